"""Same-user-or-admin checks for services embedding the verification middleware"""
from filauth.client.auth_client import AuthClient
from filauth.errors import PermissionDenied
from filauth.utils.perm import CallerContext, check_by_name


async def check_by_signer(ctx: CallerContext, client: AuthClient, *signers: str) -> None:
    """Pass if the caller is admin or every signer is bound to the caller"""
    if ctx.is_admin:
        return
    if not ctx.name:
        raise PermissionDenied()
    for signer in signers:
        if not await client.signer_exist_in_user(signer, ctx.name):
            raise PermissionDenied()


async def check_by_miner(ctx: CallerContext, client: AuthClient, *miners: str) -> None:
    """Pass if the caller is admin or every miner is bound to the caller"""
    if ctx.is_admin:
        return
    if not ctx.name:
        raise PermissionDenied()
    for miner in miners:
        if not await client.miner_exist_in_user(miner, ctx.name):
            raise PermissionDenied()


__all__ = ["check_by_miner", "check_by_name", "check_by_signer"]
