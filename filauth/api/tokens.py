"""Credential endpoints: verify, issue, look up, revoke and restore"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from filauth.api.deps import get_caller, get_service
from filauth.errors import BadRequest
from filauth.schemas import GenTokenRequest, JWTPayload, TokenInfo, TokenRequest, VerifyRequest
from filauth.services.auth_service import AuthService
from filauth.utils.perm import CallerContext

router = APIRouter(tags=["tokens"])


async def _verify_body(request: Request) -> VerifyRequest:
    """``/verify`` takes the bearer as a form field or a JSON body"""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            return VerifyRequest.model_validate(await request.json())
        form = await request.form()
        return VerifyRequest.model_validate(dict(form))
    except (ValidationError, ValueError) as exc:
        raise BadRequest(f"invalid verify request: {exc}")


@router.post("/verify", response_model=JWTPayload)
async def verify(
    request: Request,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Verify a bearer and return its signed payload

    The bearer must be registered (not revoked) and carry a valid signature.
    """
    body = await _verify_body(request)
    payload = await run_in_threadpool(service.verify, ctx, body.token)
    return JWTPayload(**payload.model_dump())


@router.post("/genToken", response_model=str)
def generate_token(
    body: GenTokenRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Issue a bearer for an existing user (Admin only)

    Issuing the same payload twice returns the same bearer.
    """
    return service.generate_token(ctx, body.name, body.perm, body.extra)


@router.get("/token", response_model=Union[TokenInfo, List[TokenInfo]])
def get_token(
    token: Optional[str] = None,
    name: Optional[str] = None,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Look up credentials

    Query parameters:
    - token: return the record of this bearer
    - name: return every active bearer issued for this user
    """
    if token:
        return TokenInfo.model_validate(service.get_token(ctx, token).model_dump())
    if name:
        return [TokenInfo.model_validate(kp.model_dump()) for kp in service.get_token_by_name(ctx, name)]
    raise BadRequest("`name` and `token` both empty")


@router.get("/tokens", response_model=List[TokenInfo])
def list_tokens(
    skip: int = 0,
    limit: int = 20,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    List active credentials (Admin only)

    Query parameters:
    - skip: Number of records to skip
    - limit: Maximum number of records to return
    """
    return [TokenInfo.model_validate(kp.model_dump()) for kp in service.tokens(ctx, skip, limit)]


@router.delete("/token")
def remove_token(
    body: TokenRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Revoke a bearer; it stops verifying until recovered"""
    service.remove_token(ctx, body.token)


@router.post("/recoverToken")
def recover_token(
    body: TokenRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Restore a revoked bearer"""
    service.recover_token(ctx, body.token)
