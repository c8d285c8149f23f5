"""Authorization service: business rules over the store.

Every operation takes the caller's :class:`CallerContext` and enforces the
"admin, or the account itself" rules before touching the store. Inputs are
validated and addresses canonicalized here so the store only ever sees
well-formed values.
"""
from typing import List, Optional

from filauth.errors import BadRequest, NotFound, PermissionDenied
from filauth.services.credentials import CredentialEngine
from filauth.storage.records import (
    USER_STATE_ENABLED,
    USER_STATE_UNDEFINED,
    USER_STATES,
    KeyPair,
    Miner,
    Payload,
    Signer,
    User,
    UserRateLimit,
    utcnow,
)
from filauth.storage.store import Store
from filauth.utils.address import canonical_miner, canonical_signer
from filauth.utils.auth import generate_user_id
from filauth.utils.logger import logger
from filauth.utils.perm import (
    PERM_READ,
    CallerContext,
    check_by_name,
    require_admin,
    require_perm,
)


def _require_name(name: str, field: str = "name") -> None:
    if not name:
        raise BadRequest(f"{field} is required")


def _check_state(state: int) -> None:
    if state not in USER_STATES:
        raise BadRequest(f"invalid user state {state}")


class AuthService:
    def __init__(self, store: Store, engine: CredentialEngine):
        self.store = store
        self.engine = engine

    # ---------------------------------------------------------------------------
    # Credentials
    # ---------------------------------------------------------------------------

    def verify(self, ctx: CallerContext, token: str) -> Payload:
        require_perm(ctx, PERM_READ)
        _require_name(token, "token")
        return self.engine.verify(token)

    def generate_token(self, ctx: CallerContext, name: str, perm: str, extra: str = "") -> str:
        require_admin(ctx)
        _require_name(name)
        if not self.store.has_user(name):
            raise NotFound(f"user {name} not found")
        return self.engine.generate(Payload(name=name, perm=perm or PERM_READ, extra=extra))

    def get_token(self, ctx: CallerContext, token: str) -> KeyPair:
        kp = self.engine.get(token)
        check_by_name(ctx, kp.name)
        return kp

    def get_token_by_name(self, ctx: CallerContext, name: str) -> List[KeyPair]:
        check_by_name(ctx, name)
        return self.engine.by_name(name)

    def tokens(self, ctx: CallerContext, skip: int, limit: int) -> List[KeyPair]:
        require_admin(ctx)
        return self.engine.tokens(skip, limit)

    def remove_token(self, ctx: CallerContext, token: str) -> None:
        kp = self.engine.get(token)
        check_by_name(ctx, kp.name)
        self.engine.remove(token)

    def recover_token(self, ctx: CallerContext, token: str) -> None:
        kp = self.store.get_token_record(token)
        check_by_name(ctx, kp.name)
        self.engine.recover(token)

    # ---------------------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------------------

    def create_user(
        self, ctx: CallerContext, name: str, comment: str = "", state: int = USER_STATE_UNDEFINED
    ) -> User:
        require_admin(ctx)
        _require_name(name)
        _check_state(state)
        now = utcnow()
        user = User(
            id=generate_user_id(),
            name=name,
            comment=comment or "",
            state=state or USER_STATE_ENABLED,
            create_time=now,
            update_time=now,
        )
        self.store.put_user(user)
        logger.info(f"Created user {name}", extra={"account": name, "action": "create_user"})
        return user

    def update_user(
        self, ctx: CallerContext, name: str, comment: Optional[str] = None, state: Optional[int] = None
    ) -> None:
        require_admin(ctx)
        user = self.store.get_user(name)
        update = {}
        if comment is not None:
            update["comment"] = comment
        if state:
            _check_state(state)
            update["state"] = state
        if update:
            self.store.update_user(user.model_copy(update=update))

    def list_users(self, ctx: CallerContext, skip: int, limit: int, state: int = USER_STATE_UNDEFINED) -> List[User]:
        require_admin(ctx)
        _check_state(state)
        return self.store.list_users(skip, limit, state)

    def get_user(self, ctx: CallerContext, name: str) -> User:
        check_by_name(ctx, name)
        return self.store.get_user(name)

    def user_miners(self, name: str) -> List[Miner]:
        """Live miners of ``name``; callers have already authorized the lookup"""
        return self.store.list_miners(name)

    def has_user(self, ctx: CallerContext, name: str) -> bool:
        check_by_name(ctx, name)
        return self.store.has_user(name)

    def verify_users(self, ctx: CallerContext, names: List[str]) -> None:
        require_admin(ctx)
        for name in names:
            if not self.store.has_user(name):
                raise NotFound(f"user {name} not found")

    def delete_user(self, ctx: CallerContext, name: str) -> None:
        require_admin(ctx)
        self.store.delete_user(name)
        logger.info(f"Deleted user {name}", extra={"account": name, "action": "delete_user"})

    def recover_user(self, ctx: CallerContext, name: str) -> None:
        require_admin(ctx)
        self.store.recover_user(name)
        logger.info(f"Recovered user {name}", extra={"account": name, "action": "recover_user"})

    # ---------------------------------------------------------------------------
    # Rate limits
    # ---------------------------------------------------------------------------

    def upsert_rate_limit(self, ctx: CallerContext, rule: UserRateLimit) -> str:
        require_admin(ctx)
        _require_name(rule.name)
        if rule.req_limit.reset_dur.total_seconds() <= 0:
            raise BadRequest("reset duration must be positive")
        if rule.req_limit.cap < 0:
            raise BadRequest("cap must not be negative")
        return self.store.put_rate_limit(rule)

    def get_rate_limits(self, ctx: CallerContext, name: str, rule_id: str = "") -> List[UserRateLimit]:
        check_by_name(ctx, name)
        return self.store.get_rate_limits(name, rule_id)

    def del_rate_limit(self, ctx: CallerContext, name: str, rule_id: str) -> str:
        require_admin(ctx)
        _require_name(rule_id, "id")
        return self.store.del_rate_limit(name, rule_id)

    # ---------------------------------------------------------------------------
    # Miners
    # ---------------------------------------------------------------------------

    def upsert_miner(self, ctx: CallerContext, user: str, miner: str, open_mining: bool = True) -> bool:
        require_admin(ctx)
        miner = canonical_miner(miner)
        owner = self.store.get_user(user)
        if not owner.enabled:
            raise BadRequest(f"user {user} is disabled")
        is_create = self.store.upsert_miner(miner, user, open_mining)
        logger.info(f"Bound miner {miner} to {user}", extra={"account": user, "action": "upsert_miner"})
        return is_create

    def has_miner(self, ctx: CallerContext, miner: str) -> bool:
        require_admin(ctx)
        return self.store.has_miner(canonical_miner(miner))

    def miner_exist_in_user(self, ctx: CallerContext, miner: str, user: str) -> bool:
        check_by_name(ctx, user)
        return self.store.miner_exist_in_user(canonical_miner(miner), user)

    def list_miners(self, ctx: CallerContext, user: str) -> List[Miner]:
        check_by_name(ctx, user)
        return self.store.list_miners(user)

    def del_miner(self, ctx: CallerContext, miner: str) -> bool:
        miner = canonical_miner(miner)
        if not ctx.is_admin and not (ctx.name and self.store.has_miner(miner, ctx.name)):
            raise PermissionDenied()
        return self.store.del_miner(miner)

    def get_user_by_miner(self, ctx: CallerContext, miner: str) -> User:
        user = self.store.get_user_by_miner(canonical_miner(miner))
        check_by_name(ctx, user.name)
        return user

    # ---------------------------------------------------------------------------
    # Signers
    # ---------------------------------------------------------------------------

    def register_signers(self, ctx: CallerContext, user: str, signers: List[str]) -> None:
        check_by_name(ctx, user)
        addrs = [canonical_signer(signer) for signer in signers]
        self.store.get_user(user)
        self.store.register_signers(user, addrs)
        logger.info(f"Registered {len(addrs)} signers for {user}",
                    extra={"account": user, "action": "register_signers"})

    def unregister_signers(self, ctx: CallerContext, user: str, signers: List[str]) -> None:
        check_by_name(ctx, user)
        addrs = [canonical_signer(signer) for signer in signers]
        self.store.unregister_signers(user, addrs)

    def signer_exist_in_user(self, ctx: CallerContext, signer: str, user: str) -> bool:
        check_by_name(ctx, user)
        return self.store.signer_exist_in_user(canonical_signer(signer), user)

    def list_signers(self, ctx: CallerContext, user: str) -> List[Signer]:
        check_by_name(ctx, user)
        return self.store.list_signers(user)

    def has_signer(self, ctx: CallerContext, signer: str, user: str = "") -> bool:
        require_admin(ctx)
        return self.store.has_signer(canonical_signer(signer), user or None)

    def get_user_by_signer(self, ctx: CallerContext, signer: str) -> List[User]:
        require_admin(ctx)
        return self.store.get_user_by_signer(canonical_signer(signer))

    def del_signer(self, ctx: CallerContext, signer: str) -> bool:
        signer = canonical_signer(signer)
        if not ctx.is_admin and not (ctx.name and self.store.has_signer(signer, ctx.name)):
            raise PermissionDenied()
        return self.store.del_signer(signer)
