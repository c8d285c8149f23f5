"""Signer binding endpoints; a signer may be bound to several users"""
from typing import List

from fastapi import APIRouter, Depends

from filauth.api.deps import get_caller, get_service, output_user
from filauth.schemas import DelSignerRequest, OutputSigner, OutputUser, SignersRequest
from filauth.services.auth_service import AuthService
from filauth.utils.perm import CallerContext

router = APIRouter(tags=["signers"])


@router.post("/user/signer/register")
def register_signers(
    body: SignersRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Bind signers to a user

    Every address is validated before anything is written; one bad address
    rejects the whole batch.
    """
    service.register_signers(ctx, body.user, body.signers)


@router.post("/user/signer/unregister")
def unregister_signers(
    body: SignersRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    service.unregister_signers(ctx, body.user, body.signers)


@router.get("/user/signer/exist", response_model=bool)
def signer_exist_in_user(
    signer: str,
    user: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return service.signer_exist_in_user(ctx, signer, user)


@router.get("/user/signer/list", response_model=List[OutputSigner])
def list_signers(
    user: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return [OutputSigner.model_validate(s.model_dump()) for s in service.list_signers(ctx, user)]


@router.get("/user/signer", response_model=List[OutputUser])
def get_user_by_signer(
    signer: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Every live user the signer is bound to (Admin only)"""
    return [output_user(service, user) for user in service.get_user_by_signer(ctx, signer)]


@router.get("/signer/has", response_model=bool)
def has_signer(
    signer: str,
    user: str = "",
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Whether the signer is bound (Admin only)

    Query parameters:
    - signer: the address
    - user: restrict to this user; empty checks every user
    """
    return service.has_signer(ctx, signer, user)


@router.post("/signer/del", response_model=bool)
def del_signer(
    body: DelSignerRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Unbind the signer from every user; false if it was not bound"""
    return service.del_signer(ctx, body.signer)
