"""Client side of filauth: HTTP client, verifiers, permission helpers"""
from filauth.client.auth_client import AuthClient
from filauth.client.limit_finder import RateLimitFinder
from filauth.client.local import DEFAULT_LOCAL_TOKEN_NAME, LocalAuthClient
from filauth.client.perm_check import check_by_miner, check_by_name, check_by_signer
from filauth.client.verifier import EngineVerifier, Verifier

__all__ = [
    "AuthClient",
    "DEFAULT_LOCAL_TOKEN_NAME",
    "EngineVerifier",
    "LocalAuthClient",
    "RateLimitFinder",
    "Verifier",
    "check_by_miner",
    "check_by_name",
    "check_by_signer",
]
