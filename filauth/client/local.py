"""In-process verifier with a locally generated secret"""
from typing import Optional

from filauth.storage.records import Payload
from filauth.utils.auth import generate_secret
from filauth.utils.jwt_utils import sign_claims, verify_claims
from filauth.utils.perm import PERM_ADMIN

DEFAULT_LOCAL_TOKEN_NAME = "defaultLocalToken"


class LocalAuthClient:
    """MAC-only verifier for services that also issue their own credentials.

    A random secret is generated unless one is passed in, and an admin
    credential named ``defaultLocalToken`` is minted with it.
    """

    location = "local"

    def __init__(self, secret: Optional[bytes] = None):
        self._secret = secret or generate_secret()
        self.token = self.sign(Payload(name=DEFAULT_LOCAL_TOKEN_NAME, perm=PERM_ADMIN))

    def sign(self, payload: Payload) -> str:
        return sign_claims(payload.model_dump(), self._secret)

    async def verify(self, token: str) -> Payload:
        claims = verify_claims(token, self._secret)
        return Payload(
            name=claims.get("name", ""),
            perm=claims.get("perm", ""),
            extra=claims.get("extra", ""),
        )
