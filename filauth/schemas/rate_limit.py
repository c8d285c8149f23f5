"""Rate-limit rule schemas"""
from datetime import timedelta

from pydantic import Field

from filauth.schemas.base import APIModel, APIRequest


class ReqLimitBody(APIModel):
    cap: int = Field(..., description="Requests allowed per window")
    reset_dur: timedelta = Field(..., description="Window length (seconds or ISO 8601 duration)")


class UserRateLimitBody(APIModel):
    id: str = ""
    name: str = Field(..., min_length=1)
    service: str = ""
    api: str = ""
    req_limit: ReqLimitBody


class UpsertRateLimitRequest(UserRateLimitBody, APIRequest):
    """Empty ``id`` allocates a new rule"""


class DelRateLimitRequest(APIRequest):
    name: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)
