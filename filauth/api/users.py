"""User account endpoints"""
from typing import List

from fastapi import APIRouter, Depends

from filauth.api.deps import get_caller, get_service, output_user
from filauth.schemas import (
    CreateUserRequest,
    OutputUser,
    UpdateUserRequest,
    UserNameRequest,
    VerifyUsersRequest,
)
from filauth.services.auth_service import AuthService
from filauth.utils.perm import CallerContext

router = APIRouter(prefix="/user", tags=["users"])


@router.put("/new", response_model=OutputUser)
def create_user(
    body: CreateUserRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    Create a user (Admin only)

    State 0 means "not specified" and creates an enabled user.
    """
    user = service.create_user(ctx, body.name, body.comment, body.state)
    return output_user(service, user)


@router.post("/update")
def update_user(
    body: UpdateUserRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Update comment and/or state (Admin only)"""
    service.update_user(ctx, body.name, body.comment, body.state)


@router.get("/list", response_model=List[OutputUser])
def list_users(
    skip: int = 0,
    limit: int = 20,
    state: int = 0,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """
    List live users (Admin only)

    Query parameters:
    - skip: Number of records to skip
    - limit: Maximum number of records to return
    - state: 0 for any state, 1 enabled, 2 disabled
    """
    return [output_user(service, user) for user in service.list_users(ctx, skip, limit, state)]


@router.get("", response_model=OutputUser)
def get_user(
    name: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return output_user(service, service.get_user(ctx, name))


@router.get("/has", response_model=bool)
def has_user(
    name: str,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    return service.has_user(ctx, name)


@router.post("/verify")
def verify_users(
    body: VerifyUsersRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Fail with 404 unless every named user exists (Admin only)"""
    service.verify_users(ctx, body.names)


@router.post("/del")
def delete_user(
    body: UserNameRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    """Soft-delete a user and its miner bindings (Admin only)"""
    service.delete_user(ctx, body.name)


@router.post("/recover")
def recover_user(
    body: UserNameRequest,
    service: AuthService = Depends(get_service),
    ctx: CallerContext = Depends(get_caller),
):
    service.recover_user(ctx, body.name)
