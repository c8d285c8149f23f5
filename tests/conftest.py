"""Pytest configuration and fixtures"""
from typing import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from filauth.config import Settings
from filauth.main import create_app
from filauth.services.auth_service import AuthService
from filauth.services.credentials import CredentialEngine
from filauth.storage.kv import KVStore
from filauth.storage.migration import migrate
from filauth.storage.sql import SQLStore
from filauth.storage.store import Store
from filauth.utils.address import set_network
from filauth.utils.perm import admin_context

TEST_SECRET = bytes.fromhex("9f1c4a7be2d05f6a8c3b19e07d4a2f6b5c8e1d3a7b9f0c2e4d6a8b1c3e5f7a9d")


@pytest.fixture(autouse=True)
def testnet() -> Generator[None, None, None]:
    """Every test canonicalizes addresses with the testnet prefix"""
    set_network("testnet")
    yield
    set_network("testnet")


def _open_store(kind: str, tmp_path) -> Store:
    if kind == "kv":
        return KVStore(tmp_path / "kv", map_size=1 << 24)
    return SQLStore(f"sqlite:///{tmp_path / 'filauth.db'}")


@pytest.fixture(params=["kv", "sql"])
def store(request, tmp_path) -> Generator[Store, None, None]:
    """A fresh, migrated store for each backend"""
    store = _open_store(request.param, tmp_path)
    migrate(store)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def secret() -> bytes:
    return TEST_SECRET


@pytest.fixture
def engine(store: Store) -> CredentialEngine:
    return CredentialEngine(store, TEST_SECRET)


@pytest.fixture
def service(store: Store, engine: CredentialEngine) -> AuthService:
    return AuthService(store, engine)


@pytest.fixture
def admin():
    """Caller context with admin rights"""
    return admin_context("root")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(REPO_PATH=str(tmp_path / "repo"), LOG_LEVEL="WARNING")


@pytest.fixture
def app(settings: Settings, store: Store) -> FastAPI:
    return create_app(settings, store=store, secret=TEST_SECRET)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client; entering it runs the lifespan, which mints the default admin"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_token(app: FastAPI, client: TestClient) -> str:
    return app.state.admin_token


@pytest.fixture
def admin_headers(admin_token: str) -> dict:
    """Admin authentication headers"""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def create_user(client: TestClient, admin_headers: dict):
    """Create a user over HTTP and return its bearer with the given perm"""

    def _create(name: str, perm: str = "read") -> str:
        response = client.put("/user/new", json={"name": name}, headers=admin_headers)
        assert response.status_code == 200, response.text
        response = client.post("/genToken", json={"name": name, "perm": perm}, headers=admin_headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _create
