"""Tests for the verification gate and request deadline"""
import asyncio

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from filauth.client.local import DEFAULT_LOCAL_TOKEN_NAME, LocalAuthClient
from filauth.errors import VerificationFailed
from filauth.middleware.auth_mux import AuthMux, caller_from_request
from filauth.middleware.monitoring import DeadlineMiddleware
from filauth.storage.records import Payload


def _downstream() -> FastAPI:
    """A service that reports who the gate let through"""
    app = FastAPI()

    @app.get("/whoami")
    @app.get("/public/info")
    @app.get("/metrics/cpu")
    def whoami(request: Request):
        ctx = caller_from_request(request)
        return {"name": ctx.name, "perms": sorted(ctx.perms), "location": ctx.token_location}

    @app.post("/submit")
    async def submit(request: Request):
        form = await request.form()
        return {"name": caller_from_request(request).name, "fields": sorted(form.keys())}

    return app


class _Rejecting:
    location = "remote"

    async def verify(self, token: str) -> Payload:
        raise VerificationFailed()


def _gate(app: FastAPI, **kwargs) -> AuthMux:
    return AuthMux(app, **kwargs)


def test_bearer_header_annotates_request():
    """A verified bearer annotates the request with the caller"""
    local = LocalAuthClient()
    client = TestClient(_gate(_downstream(), local=local))

    response = client.get("/whoami", headers={"Authorization": f"Bearer {local.token}"})
    assert response.status_code == 200
    assert response.json() == {
        "name": DEFAULT_LOCAL_TOKEN_NAME,
        "perms": ["admin", "read", "sign", "write"],
        "location": "local",
    }


def test_missing_or_invalid_bearer_is_bare_401():
    """Missing or bad bearers get an empty 401"""
    client = TestClient(_gate(_downstream(), local=LocalAuthClient()))

    response = client.get("/whoami")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.content == b""

    response = client.get("/whoami", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401

    response = client.get("/whoami", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 401


def test_verifiers_are_tried_in_order():
    """The first verifier that accepts the bearer wins"""
    local = LocalAuthClient()
    signed = local.sign(Payload(name="alice", perm="write"))

    # first verifier rejects, second accepts
    client = TestClient(_gate(_downstream(), local=_Rejecting(), remote=local))
    response = client.get("/whoami", headers={"Authorization": f"Bearer {signed}"})
    assert response.status_code == 200
    assert response.json()["name"] == "alice"
    assert response.json()["perms"] == ["read", "write"]

    # no verifier accepts
    client = TestClient(_gate(_downstream(), local=_Rejecting()))
    response = client.get("/whoami", headers={"Authorization": f"Bearer {signed}"})
    assert response.status_code == 401


def test_empty_verifier_chain_rejects():
    """Without verifiers every gated request is rejected"""
    client = TestClient(_gate(_downstream()))
    response = client.get("/whoami", headers={"Authorization": "Bearer anything"})
    assert response.status_code == 401


def test_trust_handles_bypass_verification():
    """Prefix and regex trust handles skip verification"""
    gate = _gate(_downstream(), local=LocalAuthClient(), trust_handles=["/public/"])
    gate.trust_handle("", regex=r"^/metrics/\w+$")
    client = TestClient(gate)

    response = client.get("/public/info")
    assert response.status_code == 200
    assert response.json() == {"name": None, "perms": [], "location": None}

    assert client.get("/metrics/cpu").status_code == 200
    assert client.get("/whoami").status_code == 401


def test_exact_trust_handle_does_not_match_subpaths():
    """Exact trust handles match only their own path"""
    gate = _gate(_downstream(), local=LocalAuthClient(), trust_handles=["/public"])
    client = TestClient(gate)
    assert client.get("/public/info").status_code == 401


def test_trust_handle_with_custom_handler():
    """A trust handle can route to its own handler"""
    gate = _gate(_downstream(), local=LocalAuthClient())
    other = FastAPI()

    @other.get("/whoami")
    def trusted():
        return {"trusted": True}

    gate.trust_handle("/whoami", other)
    client = TestClient(gate)
    assert client.get("/whoami").json() == {"trusted": True}


def test_token_from_query_and_form():
    """The bearer may come from the query or a form field"""
    local = LocalAuthClient()
    client = TestClient(_gate(_downstream(), local=local))

    response = client.get("/whoami", params={"token": local.token})
    assert response.status_code == 200

    # the form is still readable downstream after the gate parsed it
    response = client.post("/submit", data={"token": local.token, "memo": "hello"})
    assert response.status_code == 200
    assert response.json() == {"name": DEFAULT_LOCAL_TOKEN_NAME, "fields": ["memo", "token"]}

    response = client.post("/submit", data={"memo": "hello"})
    assert response.status_code == 401


def test_deadline_returns_504():
    """Requests over the deadline get a 504"""
    app = FastAPI()

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(0.5)
        return {"done": True}

    @app.get("/fast")
    async def fast():
        return {"done": True}

    app.add_middleware(DeadlineMiddleware, timeout=0.05)
    with TestClient(app) as client:
        response = client.get("/slow")
        assert response.status_code == 504
        assert response.json() == {"error": "request timeout"}
        assert client.get("/fast").status_code == 200


@pytest.mark.asyncio
async def test_local_client_verify():
    """The local client verifies only its own signatures"""
    local = LocalAuthClient(secret=b"0123456789abcdef0123456789abcdef")
    payload = Payload(name="alice", perm="sign", extra="e")
    assert await local.verify(local.sign(payload)) == payload

    other = LocalAuthClient()
    with pytest.raises(VerificationFailed):
        await other.verify(local.token)


def test_foreign_scheme_does_not_fall_back_to_query_or_form():
    """A non-Bearer Authorization header is rejected outright"""
    local = LocalAuthClient()
    client = TestClient(_gate(_downstream(), local=local))
    basic = {"Authorization": "Basic dXNlcjpwYXNz"}

    assert client.get("/whoami", params={"token": local.token}, headers=basic).status_code == 401
    response = client.post("/submit", data={"token": local.token}, headers=basic)
    assert response.status_code == 401


class _Blocking:
    """Verifier that waits until released, recording whether it was cancelled"""

    location = "local"

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False

    async def verify(self, token: str) -> Payload:
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return Payload(name="alice", perm="read")


def _http_scope(path: str, token: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"authorization", f"Bearer {token}".encode())],
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
    }


@pytest.mark.asyncio
async def test_cancelling_request_cancels_verifier():
    """Cancelling the request cancels the pending verification"""
    verifier = _Blocking()
    gate = _gate(_downstream(), local=verifier)
    sent = []

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        sent.append(message)

    task = asyncio.create_task(gate(_http_scope("/whoami", "pending"), receive, send))
    await asyncio.wait_for(verifier.started.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert verifier.cancelled
    assert sent == []
