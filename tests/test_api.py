"""End-to-end tests for the HTTP surface"""
from fastapi.testclient import TestClient

from filauth.config import VERSION

SIGNER_A = "t15rynkupqyfx5ebvaishg7duutwb5ooq2qpaikua"
SIGNER_B = "t1sgeoaugenqnzftqp7wvwqebcozkxa5y7i56sy2q"


def _new_user(client: TestClient, headers: dict, name: str) -> None:
    response = client.put("/user/new", json={"name": name}, headers=headers)
    assert response.status_code == 200, response.text


def _verify(client: TestClient, headers: dict, token: str):
    return client.post("/verify", data={"token": token}, headers=headers)


# ----- trusted routes and the gate -----

def test_trusted_routes_and_gate(client: TestClient, admin_headers: dict):
    """Trusted routes need no bearer; everything else does"""
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}
    assert client.get("/healthcheck").json() == {"status": "ok"}

    response = client.put("/user/new", json={"name": "gatekeeper"})
    assert response.status_code == 401
    response = client.post("/user/new", json={"name": "gatekeeper"})
    assert response.status_code == 401

    response = client.put("/user/new", json={"name": "gatekeeper"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.headers["x-request-id"]


def test_issue_and_verify(client: TestClient, admin_headers: dict):
    """Issued bearer verifies from a form field or a JSON body"""
    _new_user(client, admin_headers, "Rennbon1")
    response = client.post(
        "/genToken",
        json={"name": "Rennbon1", "perm": "admin", "extra": "custom params"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    token = response.json()

    response = _verify(client, admin_headers, token)
    assert response.status_code == 200
    assert response.json() == {"name": "Rennbon1", "perm": "admin", "extra": "custom params"}

    # JSON body works as well
    response = client.post("/verify", json={"token": token}, headers=admin_headers)
    assert response.json()["name"] == "Rennbon1"

    # the bearer can verify itself from the form field alone
    response = client.post("/verify", data={"token": token})
    assert response.status_code == 200


def test_revoke_then_restore(client: TestClient, admin_headers: dict):
    """A revoked bearer is rejected until it is recovered"""
    _new_user(client, admin_headers, "Rennbon1")
    token = client.post(
        "/genToken",
        json={"name": "Rennbon1", "perm": "admin", "extra": "custom params"},
        headers=admin_headers,
    ).json()

    response = client.request("DELETE", "/token", json={"token": token}, headers=admin_headers)
    assert response.status_code == 200

    response = _verify(client, admin_headers, token)
    assert response.status_code == 401
    assert response.json() == {"error": "A non-registered token"}
    assert client.get("/user/has", params={"name": "Rennbon1"},
                      headers={"Authorization": f"Bearer {token}"}).status_code == 401

    response = client.post("/recoverToken", json={"token": token}, headers=admin_headers)
    assert response.status_code == 200
    response = _verify(client, admin_headers, token)
    assert response.json() == {"name": "Rennbon1", "perm": "admin", "extra": "custom params"}


def test_token_lookup(client: TestClient, admin_headers: dict, create_user):
    """Tokens can be looked up by bearer or by name"""
    token = create_user("alice", "write")

    response = client.get("/token", params={"token": token}, headers=admin_headers)
    assert response.status_code == 200
    info = response.json()
    assert info["token"] == token
    assert info["perm"] == "write"
    assert "createTime" in info

    response = client.get("/token", params={"name": "alice"}, headers={"Authorization": f"Bearer {token}"})
    assert [item["token"] for item in response.json()] == [token]

    response = client.get("/token", headers=admin_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "`name` and `token` both empty"}

    response = client.get("/tokens", params={"skip": 0, "limit": 10}, headers=admin_headers)
    assert token in [item["token"] for item in response.json()]
    response = client.get("/tokens", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json() == {"error": "permission deny"}


# ----- users -----

def test_user_endpoints(client: TestClient, admin_headers: dict, create_user):
    """User create, read, update, delete and recover over HTTP"""
    alice_token = create_user("alice")
    alice = {"Authorization": f"Bearer {alice_token}"}

    response = client.get("/user", params={"name": "alice"}, headers=alice)
    assert response.status_code == 200
    user = response.json()
    assert user["name"] == "alice"
    assert user["state"] == 1
    assert user["miners"] == []
    assert {"id", "comment", "createTime", "updateTime"} <= set(user)

    assert client.get("/user/has", params={"name": "alice"}, headers=alice).json() is True
    assert client.get("/user/list", headers=alice).status_code == 403

    response = client.post("/user/update", json={"name": "alice", "state": 2}, headers=admin_headers)
    assert response.status_code == 200
    response = client.get("/user/list", params={"state": 2}, headers=admin_headers)
    assert [u["name"] for u in response.json()] == ["alice"]

    response = client.put("/user/new", json={"name": "alice"}, headers=admin_headers)
    assert response.status_code == 409

    response = client.post("/user/verify", json={"names": ["alice", "ghost"]}, headers=admin_headers)
    assert response.status_code == 404
    assert "ghost" in response.json()["error"]

    assert client.post("/user/del", json={"name": "alice"}, headers=admin_headers).status_code == 200
    names = [u["name"] for u in client.get("/user/list", headers=admin_headers).json()]
    assert "alice" not in names
    assert client.post("/user/recover", json={"name": "alice"}, headers=admin_headers).status_code == 200
    names = [u["name"] for u in client.get("/user/list", headers=admin_headers).json()]
    assert "alice" in names


def test_unknown_fields_are_rejected(client: TestClient, admin_headers: dict):
    """Request bodies with unknown or missing fields return 400"""
    response = client.put("/user/new", json={"name": "alice", "role": "root"}, headers=admin_headers)
    assert response.status_code == 400
    assert "error" in response.json()

    response = client.put("/user/new", json={"comment": "no name"}, headers=admin_headers)
    assert response.status_code == 400


# ----- miners -----

def test_miner_binding_and_ownership(client: TestClient, admin_headers: dict):
    """Miner binding follows its user and disappears on delete"""
    _new_user(client, admin_headers, "test_user_001")
    _new_user(client, admin_headers, "test_user_002")

    response = client.post("/user/miner/add", json={"user": "test_user_001", "miner": "t01000"}, headers=admin_headers)
    assert response.json() is True
    assert client.get("/miner/has", params={"miner": "t01000"}, headers=admin_headers).json() is True
    response = client.get("/user/miner/exist", params={"miner": "t01000", "user": "test_user_002"},
                          headers=admin_headers)
    assert response.json() is False

    response = client.get("/user", params={"name": "test_user_001"}, headers=admin_headers)
    assert response.json()["miners"][0]["miner"] == "t01000"
    assert response.json()["miners"][0]["openMining"] is True

    client.post("/user/del", json={"name": "test_user_001"}, headers=admin_headers)
    response = client.get("/user/miner", params={"miner": "t01000"}, headers=admin_headers)
    assert response.status_code == 404


def test_miner_address_validation(client: TestClient, admin_headers: dict):
    """Only ID or actor addresses can be bound as miners"""
    _new_user(client, admin_headers, "alice")
    response = client.post(
        "/user/miner/add",
        json={"user": "alice", "miner": "f15rynkupqyfx5ebvaishg7duutwb5ooq2qpaikua"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert "invalid protocol" in response.json()["error"]


def test_miner_compat_routes(client: TestClient, admin_headers: dict):
    """Older /miner routes share the binding handlers"""
    _new_user(client, admin_headers, "alice")

    response = client.post("/miner/add-miner", json={"user": "alice", "miner": "f01000", "openMining": False},
                           headers=admin_headers)
    assert response.json() is True
    assert client.get("/miner/has-miner", params={"miner": "t01000"}, headers=admin_headers).json() is True

    miners = client.get("/miner/list-by-user", params={"user": "alice"}, headers=admin_headers).json()
    assert [(m["miner"], m["openMining"]) for m in miners] == [("t01000", False)]
    assert client.get("/miner/get-user", params={"miner": "t01000"}, headers=admin_headers).json()["name"] == "alice"

    assert client.post("/miner/del", json={"miner": "t01000"}, headers=admin_headers).json() is True
    assert client.get("/user/miner/list", params={"user": "alice"}, headers=admin_headers).json() == []


# ----- signers -----

def test_signer_many_to_many(client: TestClient, admin_headers: dict):
    """Signers register, list, delete and unregister per user"""
    _new_user(client, admin_headers, "test_user")
    response = client.post("/user/signer/register", json={"user": "test_user", "signers": [SIGNER_A, SIGNER_B]},
                           headers=admin_headers)
    assert response.status_code == 200

    for addr in (SIGNER_A, SIGNER_B):
        response = client.get("/signer/has", params={"signer": addr, "user": ""}, headers=admin_headers)
        assert response.json() is True

    users = client.get("/user/signer", params={"signer": SIGNER_A}, headers=admin_headers).json()
    assert [u["name"] for u in users] == ["test_user"]

    assert client.post("/signer/del", json={"signer": SIGNER_A}, headers=admin_headers).json() is True
    assert client.get("/signer/has", params={"signer": SIGNER_A}, headers=admin_headers).json() is False

    signers = client.get("/user/signer/list", params={"user": "test_user"}, headers=admin_headers).json()
    assert [s["signer"] for s in signers] == [SIGNER_B]

    response = client.post("/user/signer/unregister", json={"user": "test_user", "signers": [SIGNER_B]},
                           headers=admin_headers)
    assert response.status_code == 200
    response = client.get("/user/signer/exist", params={"signer": SIGNER_B, "user": "test_user"},
                          headers=admin_headers)
    assert response.json() is False


def test_signer_batch_rejected_as_a_whole(client: TestClient, admin_headers: dict):
    """One bad address rejects the whole signer batch"""
    _new_user(client, admin_headers, "test_user")
    response = client.post("/user/signer/register", json={"user": "test_user", "signers": [SIGNER_A, "t01000"]},
                           headers=admin_headers)
    assert response.status_code == 400
    assert client.get("/signer/has", params={"signer": SIGNER_A}, headers=admin_headers).json() is False


# ----- rate limits -----

def test_rate_limit_upsert_get_del(client: TestClient, admin_headers: dict):
    """Rate-limit rules are upserted, listed and deleted"""
    rule_id = "794fc9a4-2d7f-4a3b-9c1e-5b8d6f0a7e21"
    body = {"id": rule_id, "name": "test_user_01", "reqLimit": {"cap": 10, "resetDur": 120}}
    response = client.post("/user/ratelimit/upsert", json=body, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == rule_id

    response = client.get("/user/ratelimit", params={"name": "test_user_01", "id": rule_id}, headers=admin_headers)
    rules = response.json()
    assert len(rules) == 1
    assert rules[0]["reqLimit"]["cap"] == 10

    delete = {"name": "test_user_01", "id": rule_id}
    assert client.post("/user/ratelimit/del", json=delete, headers=admin_headers).status_code == 200
    response = client.post("/user/ratelimit/del", json=delete, headers=admin_headers)
    assert response.status_code == 404


def test_rate_limit_requires_positive_window(client: TestClient, admin_headers: dict):
    """A zero reset window is a bad request"""
    body = {"name": "test_user_01", "reqLimit": {"cap": 10, "resetDur": 0}}
    response = client.post("/user/ratelimit/upsert", json=body, headers=admin_headers)
    assert response.status_code == 400


# ----- self-throttling -----

def test_rate_limited_by_account(tmp_path, store):
    """Self-throttling returns 429 once an account exceeds its limit"""
    from filauth.config import Settings
    from filauth.main import create_app

    throttled = Settings(
        REPO_PATH=str(tmp_path / "throttled"),
        LOG_LEVEL="WARNING",
        RATE_LIMIT_ENABLED=True,
        RATE_LIMIT_DEFAULT=["2/minute"],
    )
    app = create_app(throttled, store=store, secret=bytes.fromhex("00" * 31 + "01"))
    with TestClient(app) as client:
        headers = {"Authorization": f"Bearer {app.state.admin_token}"}
        for _ in range(2):
            assert client.get("/user/has", params={"name": "x"}, headers=headers).status_code == 200
        response = client.get("/user/has", params={"name": "x"}, headers=headers)
        assert response.status_code == 429
        assert "error" in response.json()


def test_long_extra_is_issued_and_verified(client: TestClient, admin_headers: dict):
    """A kilobyte of extra data survives issue and verification"""
    _new_user(client, admin_headers, "Rennbon1")
    extra = "custom params " * 100
    response = client.post("/genToken", json={"name": "Rennbon1", "perm": "sign", "extra": extra},
                           headers=admin_headers)
    assert response.status_code == 200
    token = response.json()

    response = client.post("/verify", json={"token": token}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"name": "Rennbon1", "perm": "sign", "extra": extra}
