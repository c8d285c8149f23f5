"""Credential schemas"""
from datetime import datetime

from pydantic import Field

from filauth.schemas.base import APIModel, APIRequest


class VerifyRequest(APIRequest):
    token: str = Field(..., min_length=1, description="Bearer to verify")


class JWTPayload(APIModel):
    """Payload signed into a credential"""

    name: str
    perm: str
    extra: str = ""


class GenTokenRequest(APIRequest):
    name: str = Field(..., min_length=1, description="Account the credential is issued for")
    perm: str = Field("read", description="read | write | sign | admin")
    extra: str = Field("", description="Opaque data signed into the credential")


class TokenRequest(APIRequest):
    token: str = Field(..., min_length=1)


class TokenInfo(APIModel):
    token: str
    name: str
    perm: str
    extra: str = ""
    create_time: datetime
