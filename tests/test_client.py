"""Tests for the async client, permission helpers and remote verification"""
from datetime import timedelta

import httpx
import pytest
from fastapi import FastAPI, Request

from filauth.client import AuthClient, RateLimitFinder, check_by_miner, check_by_signer
from filauth.errors import NonRegisteredToken, NotFound, PermissionDenied
from filauth.middleware.auth_mux import AuthMux, caller_from_request
from filauth.services.bootstrap import ensure_default_admin
from filauth.utils.perm import CallerContext, expand_perm

BASE_URL = "http://testserver"
SIGNER_A = "t15rynkupqyfx5ebvaishg7duutwb5ooq2qpaikua"
SIGNER_B = "t1sgeoaugenqnzftqp7wvwqebcozkxa5y7i56sy2q"


def _client(app: FastAPI, token=None) -> AuthClient:
    return AuthClient(BASE_URL, token=token, transport=httpx.ASGITransport(app=app))


def _admin_token(app: FastAPI) -> str:
    # ASGITransport does not run the lifespan, so mint the admin here
    return ensure_default_admin(app.state.service)


def _caller(name: str, perm: str = "sign") -> CallerContext:
    return CallerContext(name=name, perms=expand_perm(perm), token_location="remote")


@pytest.mark.asyncio
async def test_user_and_token_roundtrip(app: FastAPI):
    """Client covers user and credential calls end to end"""
    async with _client(app, _admin_token(app)) as client:
        assert await client.version() == "1.0.0"

        user = await client.create_user("alice", comment="ops")
        assert user.name == "alice"
        assert await client.has_user("alice") is True

        token = await client.generate_token("alice", "write", "extra")
        payload = await client.verify(token)
        assert (payload.name, payload.perm, payload.extra) == ("alice", "write", "extra")
        assert [info.token for info in await client.get_token_by_name("alice")] == [token]

        await client.remove_token(token)
        with pytest.raises(NonRegisteredToken):
            await client.verify(token)
        await client.recover_token(token)
        assert (await client.get_token(token)).perm == "write"

        await client.update_user("alice", state=2)
        assert [u.name for u in await client.list_users(state=2)] == ["alice"]


@pytest.mark.asyncio
async def test_errors_map_to_kinds(app: FastAPI):
    """Error responses come back as the matching error classes"""
    admin_token = _admin_token(app)
    async with _client(app, admin_token) as admin:
        with pytest.raises(NotFound):
            await admin.get_user("ghost")
        await admin.create_user("bob")
        reader = await admin.generate_token("bob", "read")

    async with _client(app, reader) as client:
        with pytest.raises(PermissionDenied):
            await client.list_users()

    async with _client(app, "not-a-token") as client:
        with pytest.raises(NonRegisteredToken):
            await client.has_user("bob")


@pytest.mark.asyncio
async def test_verify_without_own_token(app: FastAPI):
    """The checked bearer authenticates its own verification"""
    admin_token = _admin_token(app)
    async with _client(app) as client:
        payload = await client.verify(admin_token)
        assert payload.perm == "admin"


@pytest.mark.asyncio
async def test_rate_limit_finder(app: FastAPI):
    """The most specific rule applies to a call"""
    async with _client(app, _admin_token(app)) as client:
        rule_id = await client.upsert_rate_limit("alice", cap=10, reset_dur=timedelta(minutes=2))
        await client.upsert_rate_limit("alice", cap=3, reset_dur=60, service="venus-miner")

        rules = await client.get_rate_limits("alice", rule_id)
        assert len(rules) == 1
        assert rules[0].req_limit.reset_dur == timedelta(seconds=120)

        finder = RateLimitFinder(client)
        assert (await finder.get_user_limit("alice", "venus-miner", "submit")).req_limit.cap == 3
        assert (await finder.get_user_limit("alice", "other", "submit")).id == rule_id
        assert await finder.get_user_limit("bob", "other", "submit") is None

        assert await client.del_rate_limit("alice", rule_id) == rule_id
        with pytest.raises(NotFound):
            await client.del_rate_limit("alice", rule_id)


@pytest.mark.asyncio
async def test_check_by_miner_and_signer(app: FastAPI):
    """Ownership checks pass for owners and admins only"""
    async with _client(app, _admin_token(app)) as client:
        await client.create_user("alice")
        assert await client.upsert_miner("alice", "t01000") is True
        await client.register_signers("alice", [SIGNER_A])

        await check_by_miner(_caller("alice"), client, "t01000")
        await check_by_signer(_caller("alice"), client, SIGNER_A)
        await check_by_miner(_caller("root", "admin"), client, "t01001")

        with pytest.raises(PermissionDenied):
            await check_by_miner(_caller("alice"), client, "t01000", "t01001")
        with pytest.raises(PermissionDenied):
            await check_by_signer(_caller("alice"), client, SIGNER_B)
        with pytest.raises(PermissionDenied):
            await check_by_signer(_caller(None), client, SIGNER_A)


@pytest.mark.asyncio
async def test_client_as_remote_verifier(app: FastAPI):
    """The HTTP client works as the remote verifier of the gate"""
    admin_token = _admin_token(app)
    async with _client(app, admin_token) as admin:
        await admin.create_user("alice")
        alice_token = await admin.generate_token("alice", "sign")

    downstream = FastAPI()

    @downstream.get("/whoami")
    def whoami(request: Request):
        ctx = caller_from_request(request)
        return {"name": ctx.name, "perms": sorted(ctx.perms), "location": ctx.token_location}

    remote = _client(app)
    gate = AuthMux(downstream, remote=remote)
    async with remote:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=gate), base_url=BASE_URL) as http:
            response = await http.get("/whoami", headers={"Authorization": f"Bearer {alice_token}"})
            assert response.status_code == 200
            assert response.json() == {"name": "alice", "perms": ["read", "sign"], "location": BASE_URL}

            response = await http.get("/whoami", headers={"Authorization": "Bearer forged"})
            assert response.status_code == 401
