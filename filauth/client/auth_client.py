"""Async HTTP client for the filauth service"""
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

import httpx

from filauth.errors import InternalError, error_from_response
from filauth.schemas import (
    JWTPayload,
    OutputMiner,
    OutputSigner,
    OutputUser,
    TokenInfo,
    UserRateLimitBody,
)
from filauth.storage.records import Payload, ReqLimit, UserRateLimit


class AuthClient:
    """Client for the filauth HTTP surface.

    Every call is a coroutine, so cancelling the awaiting task (for example a
    request whose client disconnected) aborts the in-flight HTTP call.

    Non-2xx responses are raised as the matching :class:`~filauth.errors.AuthError`
    subclass built from the ``{"error": ...}`` body.

    The client also satisfies the verifier interface used by
    :class:`~filauth.middleware.auth_mux.AuthMux`: ``location`` and
    :meth:`verify`.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url:  Base URL of the auth service (e.g. ``http://localhost:8989``).
            token:     Credential sent as ``Authorization: Bearer``; optional for
                       :meth:`verify`, which can authenticate with the token it checks.
            timeout:   Per-request timeout in seconds.
            transport: Custom transport (``httpx.ASGITransport`` in tests).
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def location(self) -> str:
        return self.base_url

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ---------------------------------------------------------------------------
    # Internal request handling
    # ---------------------------------------------------------------------------

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON body.

        Raises:
            AuthError: on non-2xx responses, rebuilt from the error body.
            InternalError: on transport failures.
        """
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise InternalError(f"{method} {endpoint}: {exc}") from exc

        if response.status_code >= 400:
            try:
                message = response.json().get("error", "")
            except ValueError:
                message = response.text
            raise error_from_response(response.status_code, message)

        if not response.content:
            return None
        return response.json()

    # ---------------------------------------------------------------------------
    # Credentials
    # ---------------------------------------------------------------------------

    async def verify(self, token: str) -> Payload:
        headers = {} if self.token else {"Authorization": f"Bearer {token}"}
        data = await self._request("POST", "/verify", data={"token": token}, headers=headers)
        return Payload(**JWTPayload.model_validate(data).model_dump())

    async def generate_token(self, name: str, perm: str = "read", extra: str = "") -> str:
        return await self._request("POST", "/genToken", json={"name": name, "perm": perm, "extra": extra})

    async def get_token(self, token: str) -> TokenInfo:
        data = await self._request("GET", "/token", params={"token": token})
        return TokenInfo.model_validate(data)

    async def get_token_by_name(self, name: str) -> List[TokenInfo]:
        data = await self._request("GET", "/token", params={"name": name})
        return [TokenInfo.model_validate(item) for item in data]

    async def tokens(self, skip: int = 0, limit: int = 20) -> List[TokenInfo]:
        data = await self._request("GET", "/tokens", params={"skip": skip, "limit": limit})
        return [TokenInfo.model_validate(item) for item in data]

    async def remove_token(self, token: str) -> None:
        await self._request("DELETE", "/token", json={"token": token})

    async def recover_token(self, token: str) -> None:
        await self._request("POST", "/recoverToken", json={"token": token})

    # ---------------------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------------------

    async def create_user(self, name: str, comment: str = "", state: int = 0) -> OutputUser:
        data = await self._request("PUT", "/user/new", json={"name": name, "comment": comment, "state": state})
        return OutputUser.model_validate(data)

    async def update_user(self, name: str, comment: Optional[str] = None, state: Optional[int] = None) -> None:
        body: Dict[str, Any] = {"name": name}
        if comment is not None:
            body["comment"] = comment
        if state is not None:
            body["state"] = state
        await self._request("POST", "/user/update", json=body)

    async def list_users(self, skip: int = 0, limit: int = 20, state: int = 0) -> List[OutputUser]:
        data = await self._request("GET", "/user/list", params={"skip": skip, "limit": limit, "state": state})
        return [OutputUser.model_validate(item) for item in data]

    async def get_user(self, name: str) -> OutputUser:
        data = await self._request("GET", "/user", params={"name": name})
        return OutputUser.model_validate(data)

    async def has_user(self, name: str) -> bool:
        return await self._request("GET", "/user/has", params={"name": name})

    async def verify_users(self, names: List[str]) -> None:
        await self._request("POST", "/user/verify", json={"names": names})

    async def delete_user(self, name: str) -> None:
        await self._request("POST", "/user/del", json={"name": name})

    async def recover_user(self, name: str) -> None:
        await self._request("POST", "/user/recover", json={"name": name})

    # ---------------------------------------------------------------------------
    # Rate limits
    # ---------------------------------------------------------------------------

    async def upsert_rate_limit(
        self,
        name: str,
        cap: int,
        reset_dur: Union[timedelta, float],
        service: str = "",
        api: str = "",
        rule_id: str = "",
    ) -> str:
        if isinstance(reset_dur, timedelta):
            reset_dur = reset_dur.total_seconds()
        body = {
            "id": rule_id,
            "name": name,
            "service": service,
            "api": api,
            "reqLimit": {"cap": cap, "resetDur": reset_dur},
        }
        return await self._request("POST", "/user/ratelimit/upsert", json=body)

    async def get_rate_limits(self, name: str, rule_id: str = "") -> List[UserRateLimit]:
        params = {"name": name}
        if rule_id:
            params["id"] = rule_id
        data = await self._request("GET", "/user/ratelimit", params=params)
        rules = [UserRateLimitBody.model_validate(item) for item in data]
        return [
            UserRateLimit(
                id=rule.id,
                name=rule.name,
                service=rule.service,
                api=rule.api,
                req_limit=ReqLimit(cap=rule.req_limit.cap, reset_dur=rule.req_limit.reset_dur),
            )
            for rule in rules
        ]

    async def del_rate_limit(self, name: str, rule_id: str) -> str:
        return await self._request("POST", "/user/ratelimit/del", json={"name": name, "id": rule_id})

    # ---------------------------------------------------------------------------
    # Miners
    # ---------------------------------------------------------------------------

    async def upsert_miner(self, user: str, miner: str, open_mining: bool = True) -> bool:
        body = {"user": user, "miner": miner, "openMining": open_mining}
        return await self._request("POST", "/user/miner/add", json=body)

    async def miner_exist_in_user(self, miner: str, user: str) -> bool:
        return await self._request("GET", "/user/miner/exist", params={"miner": miner, "user": user})

    async def list_miners(self, user: str) -> List[OutputMiner]:
        data = await self._request("GET", "/user/miner/list", params={"user": user})
        return [OutputMiner.model_validate(item) for item in data]

    async def del_miner(self, miner: str) -> bool:
        return await self._request("POST", "/user/miner/del", json={"miner": miner})

    async def get_user_by_miner(self, miner: str) -> OutputUser:
        data = await self._request("GET", "/user/miner", params={"miner": miner})
        return OutputUser.model_validate(data)

    async def has_miner(self, miner: str) -> bool:
        return await self._request("GET", "/miner/has", params={"miner": miner})

    # ---------------------------------------------------------------------------
    # Signers
    # ---------------------------------------------------------------------------

    async def register_signers(self, user: str, signers: List[str]) -> None:
        await self._request("POST", "/user/signer/register", json={"user": user, "signers": signers})

    async def unregister_signers(self, user: str, signers: List[str]) -> None:
        await self._request("POST", "/user/signer/unregister", json={"user": user, "signers": signers})

    async def signer_exist_in_user(self, signer: str, user: str) -> bool:
        return await self._request("GET", "/user/signer/exist", params={"signer": signer, "user": user})

    async def list_signers(self, user: str) -> List[OutputSigner]:
        data = await self._request("GET", "/user/signer/list", params={"user": user})
        return [OutputSigner.model_validate(item) for item in data]

    async def get_user_by_signer(self, signer: str) -> List[OutputUser]:
        data = await self._request("GET", "/user/signer", params={"signer": signer})
        return [OutputUser.model_validate(item) for item in data]

    async def has_signer(self, signer: str, user: str = "") -> bool:
        params = {"signer": signer}
        if user:
            params["user"] = user
        return await self._request("GET", "/signer/has", params=params)

    async def del_signer(self, signer: str) -> bool:
        return await self._request("POST", "/signer/del", json={"signer": signer})

    # ---------------------------------------------------------------------------
    # Misc
    # ---------------------------------------------------------------------------

    async def version(self) -> str:
        data = await self._request("GET", "/version")
        return data["version"]
