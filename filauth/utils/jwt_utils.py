"""JWT utilities: HMAC secret management, signing, verification"""
import binascii
import os
from typing import Any, Dict

from jose import JWTError, jwt

from filauth.config import Settings
from filauth.errors import VerificationFailed
from filauth.utils.auth import generate_secret
from filauth.utils.logger import logger

JWT_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Secret management
# ---------------------------------------------------------------------------


def decode_secret(secret_hex: str) -> bytes:
    try:
        secret = bytes.fromhex(secret_hex.strip())
    except ValueError:
        raise ValueError("SECRET must be a hex encoded string")
    if not secret:
        raise ValueError("SECRET must not be empty")
    return secret


def load_or_create_secret(settings: Settings) -> bytes:
    """Load or auto-generate the HMAC signing secret.

    Lookup order:
    1. ``SECRET`` setting (hex string).
    2. ``<repo>/secret`` file written by a previous run.
    3. A fresh random secret, persisted to ``<repo>/secret`` so that issued
       credentials keep verifying across restarts.
    """
    if settings.SECRET:
        logger.info("Signing secret loaded from SECRET setting")
        return decode_secret(settings.SECRET)

    path = settings.secret_path
    if path.exists():
        logger.info(f"Signing secret loaded from {path}")
        return decode_secret(path.read_text())

    secret = generate_secret()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(binascii.hexlify(secret).decode())
    os.chmod(path, 0o600)
    logger.warning(f"SECRET not set, generated a new signing secret and stored it in {path}")
    return secret


# ---------------------------------------------------------------------------
# Token creation
# ---------------------------------------------------------------------------

def sign_claims(claims: Dict[str, Any], secret: bytes) -> str:
    """Sign ``claims`` with HS256.

    No time-based claims are added, so the same claims and secret always
    produce the same token.
    """
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

def verify_claims(token: str, secret: bytes) -> Dict[str, Any]:
    """Check the MAC of ``token`` and return its claims.

    Raises:
        VerificationFailed: on a malformed token or a signature mismatch.
    """
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug(f"JWT decode failed: {exc}")
        raise VerificationFailed()
