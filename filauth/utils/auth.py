"""Authentication utilities"""
import hashlib
import secrets
import uuid
from typing import Optional

BEARER_PREFIX = "Bearer "

SECRET_SIZE = 32


def generate_secret() -> bytes:
    """Generate a random HMAC secret"""
    return secrets.token_bytes(SECRET_SIZE)


def token_digest(token: str) -> str:
    """Fixed-size lookup key for a bearer of any length (SHA256 hex)"""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_user_id() -> str:
    """Generate a unique user ID (version-4 UUID)"""
    return str(uuid.uuid4())


def generate_rule_id() -> str:
    """Generate a unique rate-limit rule ID (version-4 UUID)"""
    return str(uuid.uuid4())


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the credential from an ``Authorization`` header value

    Returns None when the header is missing, uses another scheme, or is empty.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None
