"""Tests for the permission lattice, caller checks and rule matching"""
from datetime import timedelta

import pytest

from filauth.errors import PermissionDenied
from filauth.storage.records import ReqLimit, UserRateLimit, match_rate_limit
from filauth.storage.store import MAX_PAGE_LIMIT, clamp_page
from filauth.utils.perm import (
    ANONYMOUS,
    CallerContext,
    admin_context,
    check_by_name,
    expand_perm,
    is_valid_perm,
    require_admin,
)


def test_expand_perm_lattice():
    """Each perm expands to itself and everything below it"""
    assert expand_perm("admin") == {"read", "write", "sign", "admin"}
    assert expand_perm("sign") == {"read", "write", "sign"}
    assert expand_perm("write") == {"read", "write"}
    assert expand_perm("read") == {"read"}
    assert expand_perm("root") == frozenset()


def test_is_valid_perm():
    """Only the four perms are valid"""
    assert is_valid_perm("sign")
    assert not is_valid_perm("")
    assert not is_valid_perm("Admin")


def test_check_by_name():
    """Same user or admin passes the name check"""
    alice = CallerContext(name="alice", perms=expand_perm("write"), token_location="local")
    check_by_name(alice, "alice")
    check_by_name(admin_context(), "alice")
    with pytest.raises(PermissionDenied) as exc_info:
        check_by_name(alice, "bob")
    assert exc_info.value.message == "permission deny"
    with pytest.raises(PermissionDenied):
        check_by_name(ANONYMOUS, "alice")


def test_require_admin():
    """Only admin passes the admin check"""
    require_admin(admin_context("ops"))
    with pytest.raises(PermissionDenied):
        require_admin(CallerContext(name="ops", perms=expand_perm("sign"), token_location="local"))


def test_clamp_page():
    """Pagination arguments are clamped into range"""
    assert clamp_page(-5, 0) == (0, 1)
    assert clamp_page(10, 20) == (10, 20)
    assert clamp_page(0, 10 ** 6) == (0, MAX_PAGE_LIMIT)


def _rule(rule_id: str, service: str = "", api: str = "") -> UserRateLimit:
    return UserRateLimit(
        id=rule_id,
        name="miner-ops",
        service=service,
        api=api,
        req_limit=ReqLimit(cap=10, reset_dur=timedelta(minutes=1)),
    )


def test_match_rate_limit_prefers_longer_selectors():
    """Exact service and api rules beat broader ones"""
    rules = [
        _rule("any"),
        _rule("service", service="messager"),
        _rule("exact", service="messager", api="PushMsg"),
        _rule("other", service="gateway"),
    ]
    assert match_rate_limit(rules, "messager", "PushMsg").id == "exact"
    assert match_rate_limit(rules, "messager", "GetMsg").id == "service"
    assert match_rate_limit(rules, "market", "Deal").id == "any"


def test_match_rate_limit_without_catch_all():
    """No matching rule means unlimited"""
    rules = [_rule("service", service="messager"), _rule("api-only", api="PushMsg")]
    assert match_rate_limit(rules, "gateway", "PushMsg") is None
    assert match_rate_limit([], "messager", "PushMsg") is None
