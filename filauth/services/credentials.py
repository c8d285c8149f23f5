"""Credential engine: signs, verifies, revokes and restores bearer credentials"""
from typing import List

from filauth.errors import BadRequest, NonRegisteredToken
from filauth.storage.records import KeyPair, Payload, utcnow
from filauth.storage.store import Store
from filauth.utils.jwt_utils import sign_claims, verify_claims
from filauth.utils.logger import logger
from filauth.utils.perm import is_valid_perm


class CredentialEngine:
    """HS256 credentials backed by the store's active/revoked set.

    The secret is fixed for the lifetime of the engine. Signing has no
    time-based claims, so a payload always maps to the same bearer.
    """

    def __init__(self, store: Store, secret: bytes):
        if not secret:
            raise ValueError("secret must not be empty")
        self.store = store
        self._secret = secret

    def generate(self, payload: Payload) -> str:
        if not payload.name:
            raise BadRequest("name is required")
        if not is_valid_perm(payload.perm):
            raise BadRequest(f"invalid perm {payload.perm!r}")

        token = sign_claims(payload.model_dump(), self._secret)
        if not self.store.has_token(token):
            self.store.put_token(KeyPair(
                token=token,
                name=payload.name,
                perm=payload.perm,
                extra=payload.extra,
                create_time=utcnow(),
            ))
            logger.info(f"Issued token for {payload.name}",
                        extra={"account": payload.name, "perm": payload.perm, "action": "issue_token"})
        return token

    def verify(self, token: str) -> Payload:
        """Check registration first, then the MAC.

        Raises:
            NonRegisteredToken: unknown or revoked bearer.
            VerificationFailed: bearer is registered but its signature does not check.
        """
        if not self.store.has_token(token):
            raise NonRegisteredToken()
        claims = verify_claims(token, self._secret)
        return Payload(
            name=claims.get("name", ""),
            perm=claims.get("perm", ""),
            extra=claims.get("extra", ""),
        )

    def get(self, token: str) -> KeyPair:
        return self.store.get_token(token)

    def remove(self, token: str) -> None:
        self.store.delete_token(token)
        logger.info("Revoked token", extra={"action": "remove_token"})

    def recover(self, token: str) -> None:
        kp = self.store.get_token_record(token)
        if not kp.is_deleted:
            return
        self.store.update_token(kp.model_copy(update={"is_deleted": False}))
        logger.info(f"Recovered token of {kp.name}", extra={"account": kp.name, "action": "recover_token"})

    def tokens(self, skip: int, limit: int) -> List[KeyPair]:
        return self.store.list_tokens(skip, limit)

    def by_name(self, name: str) -> List[KeyPair]:
        return self.store.token_by_name(name)
