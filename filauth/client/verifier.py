"""Verifiers consulted by the verification middleware, in order"""
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from filauth.services.credentials import CredentialEngine
from filauth.storage.records import Payload

LOCATION_LOCAL = "local"


class Verifier(Protocol):
    """Checks a bearer and returns its payload.

    ``verify`` raises an :class:`~filauth.errors.AuthError` subclass on
    rejection. It is awaited, so cancelling the caller cancels the check.
    """

    location: str

    async def verify(self, token: str) -> Payload:
        ...


class EngineVerifier:
    """Verifies against an in-process :class:`CredentialEngine` (store lookup + MAC)"""

    location = LOCATION_LOCAL

    def __init__(self, engine: CredentialEngine):
        self._engine = engine

    async def verify(self, token: str) -> Payload:
        return await run_in_threadpool(self._engine.verify, token)
