"""Permission lattice and the caller context handed to the service layer.

A credential carries a single ``perm`` value. It is expanded once, when the
request is verified, into the set of permissions it implies:

    admin (4) > sign (3) > write (2) > read (1)
"""
from typing import FrozenSet, NamedTuple, Optional

from filauth.errors import PermissionDenied

PERM_READ = "read"
PERM_WRITE = "write"
PERM_SIGN = "sign"
PERM_ADMIN = "admin"

# ---------------------------------------------------------------------------
# Permission hierarchy
# ---------------------------------------------------------------------------

_PERM_HIERARCHY: dict[str, int] = {
    PERM_ADMIN: 4,
    PERM_SIGN: 3,
    PERM_WRITE: 2,
    PERM_READ: 1,
}

def is_valid_perm(perm: str) -> bool:
    return perm in _PERM_HIERARCHY


def expand_perm(perm: str) -> FrozenSet[str]:
    """Return every permission implied by ``perm``; unknown values imply nothing"""
    level = _PERM_HIERARCHY.get(perm, 0)
    return frozenset(p for p, lvl in _PERM_HIERARCHY.items() if lvl <= level)


class CallerContext(NamedTuple):
    """Resolved caller identity, populated by the verification middleware."""
    name: Optional[str]             # account name from the credential payload
    perms: FrozenSet[str]           # expanded permission set
    token_location: Optional[str]   # "local" or the remote verifier address

    def has_perm(self, perm: str) -> bool:
        return perm in self.perms

    @property
    def is_admin(self) -> bool:
        return PERM_ADMIN in self.perms


ANONYMOUS = CallerContext(name=None, perms=frozenset(), token_location=None)


def admin_context(name: Optional[str] = None) -> CallerContext:
    """Context carrying full admin rights, used by bootstrap code and tests"""
    return CallerContext(name=name, perms=expand_perm(PERM_ADMIN), token_location="local")


# ---------------------------------------------------------------------------
# Same user, or admin
# ---------------------------------------------------------------------------

def check_by_name(ctx: CallerContext, name: str) -> None:
    """Pass if the caller is admin or is the account ``name``"""
    if ctx.is_admin:
        return
    if ctx.name and ctx.name == name:
        return
    raise PermissionDenied()


def require_perm(ctx: CallerContext, perm: str) -> None:
    if not ctx.has_perm(perm):
        raise PermissionDenied()


def require_admin(ctx: CallerContext) -> None:
    require_perm(ctx, PERM_ADMIN)
