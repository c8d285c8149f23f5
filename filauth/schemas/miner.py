"""Miner binding schemas"""
from datetime import datetime

from pydantic import Field

from filauth.schemas.base import APIModel, APIRequest


class UpsertMinerRequest(APIRequest):
    user: str = Field(..., min_length=1)
    miner: str = Field(..., min_length=1, description="ID or actor address")
    open_mining: bool = True


class DelMinerRequest(APIRequest):
    miner: str = Field(..., min_length=1)


class OutputMiner(APIModel):
    miner: str
    user: str
    open_mining: bool
    create_time: datetime
    update_time: datetime
