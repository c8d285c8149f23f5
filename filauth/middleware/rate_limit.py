"""Throttling of the service's own API"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from filauth.config import Settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting

    Priority:
    1. Account name recorded by the verification middleware
    2. IP address (trusted routes, rejected requests)
    """
    name = getattr(request.state, "name", None)
    if name:
        return f"account:{name}"
    return get_remote_address(request)


def build_limiter(settings: Settings) -> Limiter:
    """Limiter keyed by caller account, enabled by ``RATE_LIMIT_ENABLED``"""
    return Limiter(
        key_func=get_identifier,
        default_limits=settings.RATE_LIMIT_DEFAULT,
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )
