"""Pydantic schemas for request/response validation"""
from filauth.schemas.miner import DelMinerRequest, OutputMiner, UpsertMinerRequest
from filauth.schemas.rate_limit import DelRateLimitRequest, ReqLimitBody, UpsertRateLimitRequest, UserRateLimitBody
from filauth.schemas.signer import DelSignerRequest, OutputSigner, SignersRequest
from filauth.schemas.token import GenTokenRequest, JWTPayload, TokenInfo, TokenRequest, VerifyRequest
from filauth.schemas.user import (
    CreateUserRequest,
    OutputUser,
    UpdateUserRequest,
    UserNameRequest,
    VerifyUsersRequest,
)

__all__ = [
    "CreateUserRequest",
    "DelMinerRequest",
    "DelRateLimitRequest",
    "DelSignerRequest",
    "GenTokenRequest",
    "JWTPayload",
    "OutputMiner",
    "OutputSigner",
    "OutputUser",
    "ReqLimitBody",
    "SignersRequest",
    "TokenInfo",
    "TokenRequest",
    "UpdateUserRequest",
    "UpsertMinerRequest",
    "UpsertRateLimitRequest",
    "UserNameRequest",
    "UserRateLimitBody",
    "VerifyRequest",
    "VerifyUsersRequest",
]
