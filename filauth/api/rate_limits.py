"""Per-user rate-limit rule endpoints"""
from typing import List

from fastapi import APIRouter, Depends

from filauth.api.deps import get_caller, get_service
from filauth.schemas import DelRateLimitRequest, UpsertRateLimitRequest, UserRateLimitBody
from filauth.services.auth_service import AuthService
from filauth.storage.records import ReqLimit, UserRateLimit
from filauth.utils.perm import CallerContext

router = APIRouter(prefix="/user/ratelimit", tags=["rate limits"])


@router.post("/upsert", response_model=str)
def upsert_rate_limit(
    body: UpsertRateLimitRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Create or overwrite a rule (Admin only)

    An empty ``id`` allocates a new rule; the rule id is returned.
    """
    rule = UserRateLimit(
        id=body.id,
        name=body.name,
        service=body.service,
        api=body.api,
        req_limit=ReqLimit(cap=body.req_limit.cap, reset_dur=body.req_limit.reset_dur),
    )
    return service.upsert_rate_limit(ctx, rule)


@router.get("", response_model=List[UserRateLimitBody])
def get_rate_limits(
    name: str,
    id: str = "",
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Rules of a user

    Query parameters:
    - name: the user
    - id: restrict to one rule
    """
    return [UserRateLimitBody.model_validate(rule.model_dump()) for rule in service.get_rate_limits(ctx, name, id)]


@router.post("/del", response_model=str)
def del_rate_limit(
    body: DelRateLimitRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Delete a rule (Admin only); 404 if it does not exist"""
    return service.del_rate_limit(ctx, body.name, body.id)
