"""Miner binding endpoints.

The ``/miner/...`` spellings are kept for older clients and share handlers
with their ``/user/miner/...`` equivalents.
"""
from typing import List

from fastapi import APIRouter, Depends

from filauth.api.deps import get_caller, get_service, output_miner, output_user
from filauth.schemas import DelMinerRequest, OutputMiner, OutputUser, UpsertMinerRequest
from filauth.services.auth_service import AuthService
from filauth.utils.perm import CallerContext

router = APIRouter(tags=["miners"])


@router.post("/user/miner/add", response_model=bool)
@router.post("/miner/add-miner", response_model=bool, include_in_schema=False)
def upsert_miner(
    body: UpsertMinerRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Bind a miner to an enabled user (Admin only)

    Returns true if the binding is new, false if an existing one was updated
    (possibly moving the miner from another user).
    """
    return service.upsert_miner(ctx, body.user, body.miner, body.open_mining)


@router.get("/user/miner/exist", response_model=bool)
def miner_exist_in_user(
    miner: str,
    user: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return service.miner_exist_in_user(ctx, miner, user)


@router.get("/user/miner/list", response_model=List[OutputMiner])
@router.get("/miner/list-by-user", response_model=List[OutputMiner], include_in_schema=False)
def list_miners(
    user: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return [output_miner(m) for m in service.list_miners(ctx, user)]


@router.post("/user/miner/del", response_model=bool)
@router.post("/miner/del", response_model=bool, include_in_schema=False)
def del_miner(
    body: DelMinerRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Unbind a miner (Admin or the owning user); false if it was not bound"""
    return service.del_miner(ctx, body.miner)


@router.get("/user/miner", response_model=OutputUser)
@router.get("/miner/get-user", response_model=OutputUser, include_in_schema=False)
def get_user_by_miner(
    miner: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return output_user(service, service.get_user_by_miner(ctx, miner))


@router.get("/miner/has", response_model=bool)
@router.get("/miner/has-miner", response_model=bool, include_in_schema=False)
def has_miner(
    miner: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Whether any live user owns the miner (Admin only)"""
    return service.has_miner(ctx, miner)
