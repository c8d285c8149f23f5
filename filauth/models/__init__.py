"""Database models"""
from filauth.models.miner import Miner
from filauth.models.rate_limit import UserRateLimit
from filauth.models.signer import Signer
from filauth.models.store_version import StoreVersion
from filauth.models.token import Token
from filauth.models.user import User

__all__ = ["Miner", "Signer", "StoreVersion", "Token", "User", "UserRateLimit"]
