"""Resolves the rate-limit rule that applies to an account's call"""
from typing import Optional

from filauth.client.auth_client import AuthClient
from filauth.storage.records import UserRateLimit, match_rate_limit


class RateLimitFinder:
    def __init__(self, client: AuthClient):
        self._client = client

    async def get_user_limit(self, name: str, service: str, api: str) -> Optional[UserRateLimit]:
        """Most specific rule of ``name`` for (service, api), or None when unlimited"""
        rules = await self._client.get_rate_limits(name)
        return match_rate_limit(rules, service, api)
