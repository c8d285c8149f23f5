"""User schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from filauth.schemas.base import APIModel, APIRequest
from filauth.schemas.miner import OutputMiner


class CreateUserRequest(APIRequest):
    name: str = Field(..., min_length=1, max_length=255, description="Unique account name")
    comment: str = Field("", max_length=255)
    state: int = Field(0, description="0 (default: enabled), 1 enabled, 2 disabled")


class UpdateUserRequest(APIRequest):
    name: str = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=255)
    state: Optional[int] = None


class UserNameRequest(APIRequest):
    name: str = Field(..., min_length=1)


class VerifyUsersRequest(APIRequest):
    names: List[str] = Field(..., min_length=1)


class OutputUser(APIModel):
    id: str
    name: str
    comment: str
    state: int
    create_time: datetime
    update_time: datetime
    miners: List[OutputMiner] = Field(default_factory=list)
