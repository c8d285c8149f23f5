"""Signer binding schemas"""
from datetime import datetime
from typing import List

from pydantic import Field

from filauth.schemas.base import APIModel, APIRequest


class SignersRequest(APIRequest):
    """Batch register / unregister; the batch is validated as a whole"""

    user: str = Field(..., min_length=1)
    signers: List[str] = Field(..., min_length=1, description="secp256k1 or BLS addresses")


class DelSignerRequest(APIRequest):
    signer: str = Field(..., min_length=1)


class OutputSigner(APIModel):
    signer: str
    user: str
    create_time: datetime
    update_time: datetime
