"""Shared schema configuration"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """Response record: camelCase on the wire, snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class APIRequest(APIModel):
    """Request record; unknown fields are rejected"""

    class Config:
        extra = "forbid"
