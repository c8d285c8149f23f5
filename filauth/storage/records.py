"""Records persisted by the store backends"""
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

# User states; 0 is only meaningful as "not specified" on input or "any" as a filter
USER_STATE_UNDEFINED = 0
USER_STATE_ENABLED = 1
USER_STATE_DISABLED = 2

USER_STATES = (USER_STATE_UNDEFINED, USER_STATE_ENABLED, USER_STATE_DISABLED)


def utcnow() -> datetime:
    return datetime.utcnow()


class KeyPair(BaseModel):
    """An issued credential and the payload it was signed with"""

    token: str
    name: str
    perm: str
    extra: str = ""
    create_time: datetime = Field(default_factory=utcnow)
    is_deleted: bool = False

    class Config:
        from_attributes = True


class User(BaseModel):
    id: str
    name: str
    comment: str = ""
    state: int = USER_STATE_ENABLED
    create_time: datetime = Field(default_factory=utcnow)
    update_time: datetime = Field(default_factory=utcnow)
    is_deleted: bool = False

    class Config:
        from_attributes = True

    @property
    def enabled(self) -> bool:
        return self.state == USER_STATE_ENABLED


class Miner(BaseModel):
    miner: str
    user: str
    open_mining: bool = True
    create_time: datetime = Field(default_factory=utcnow)
    update_time: datetime = Field(default_factory=utcnow)
    is_deleted: bool = False

    class Config:
        from_attributes = True


class Signer(BaseModel):
    signer: str
    user: str
    create_time: datetime = Field(default_factory=utcnow)
    update_time: datetime = Field(default_factory=utcnow)
    is_deleted: bool = False

    class Config:
        from_attributes = True


class ReqLimit(BaseModel):
    cap: int = 0
    reset_dur: timedelta = timedelta(0)


class UserRateLimit(BaseModel):
    id: str = ""
    name: str
    service: str = ""
    api: str = ""
    req_limit: ReqLimit = Field(default_factory=ReqLimit)


def match_rate_limit(
    rules: List[UserRateLimit], service: str, api: str
) -> Optional[UserRateLimit]:
    """Pick the rule that applies to (service, api).

    Precedence: exact (service, api) > service-only > empty selectors.
    """
    best: Optional[UserRateLimit] = None
    best_rank = 0
    for rule in rules:
        if rule.service and rule.api:
            rank = 3 if (rule.service, rule.api) == (service, api) else 0
        elif rule.service:
            rank = 2 if rule.service == service else 0
        elif rule.api:
            rank = 0
        else:
            rank = 1
        if rank > best_rank:
            best, best_rank = rule, rank
    return best


class Payload(BaseModel):
    """The three fields signed into a credential"""

    name: str
    perm: str
    extra: str = ""
