"""API dependencies.

The verification middleware has already checked the bearer by the time a
handler runs; handlers only need the service handle and the caller context
the middleware left on the request. Authorization itself is decided by the
service layer, which receives the context with every call.
"""
from fastapi import Request

from filauth.middleware.auth_mux import caller_from_request
from filauth.services.auth_service import AuthService
from filauth.storage.records import Miner, User
from filauth.schemas import OutputMiner, OutputUser
from filauth.utils.perm import CallerContext


def get_service(request: Request) -> AuthService:
    """The application's :class:`AuthService`, built in :func:`filauth.main.create_app`"""
    return request.app.state.service


def get_caller(request: Request) -> CallerContext:
    return caller_from_request(request)


def output_miner(miner: Miner) -> OutputMiner:
    return OutputMiner.model_validate(miner.model_dump())


def output_user(service: AuthService, user: User) -> OutputUser:
    """User record with its live miner bindings attached"""
    miners = [output_miner(m) for m in service.user_miners(user.name)]
    return OutputUser(**user.model_dump(exclude={"is_deleted"}), miners=miners)
