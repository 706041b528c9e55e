from __future__ import annotations

import pytest

from authkit.auth.access import (
    ADMIN_ONLY,
    CREATOR_OR_ADMIN,
    Principal,
    is_owner_or_admin,
    require_role,
    require_verified,
    role_allows,
)
from authkit.auth.errors import Forbidden
from authkit.auth.models import Account, Role


def _principal(role: Role, *, account_id: int = 1, verified: bool = True) -> Principal:
    return Principal(
        id=account_id,
        email=f"{role.value}@x.com",
        name=role.value.title(),
        role=role,
        is_verified=verified,
    )


@pytest.mark.parametrize(
    "allowed,role,expected",
    [
        (ADMIN_ONLY, Role.ADMIN, True),
        (ADMIN_ONLY, Role.CREATOR, False),
        (ADMIN_ONLY, Role.USER, False),
        (CREATOR_OR_ADMIN, Role.CREATOR, True),
        (CREATOR_OR_ADMIN, Role.ADMIN, True),
        (CREATOR_OR_ADMIN, Role.USER, False),
        (frozenset(), Role.ADMIN, False),
    ],
)
def test_role_allows(allowed, role, expected) -> None:
    assert role_allows(allowed, role) is expected


def test_role_allows_accepts_role_names() -> None:
    assert role_allows(["admin"], "admin")
    assert not role_allows(ADMIN_ONLY, "superuser")


def test_require_role_returns_principal_or_forbids() -> None:
    creator = _principal(Role.CREATOR)
    assert require_role(creator, CREATOR_OR_ADMIN) is creator
    with pytest.raises(Forbidden) as excinfo:
        require_role(creator, ADMIN_ONLY)
    assert excinfo.value.status_code == 403


def test_require_verified() -> None:
    assert require_verified(_principal(Role.USER))
    with pytest.raises(Forbidden):
        require_verified(_principal(Role.USER, verified=False))


def test_is_owner_or_admin() -> None:
    user = _principal(Role.USER, account_id=5)
    assert is_owner_or_admin(user, 5)
    assert not is_owner_or_admin(user, 6)
    assert is_owner_or_admin(_principal(Role.ADMIN, account_id=1), 6)


def test_principal_from_account_drops_secrets() -> None:
    account = Account(
        id=3,
        name="Amy",
        email="amy@x.com",
        password_hash="$2b$04$digest",
        role=Role.CREATOR,
        is_verified=False,
        verification_token_hash="abc",
    )
    principal = Principal.from_account(account)
    assert principal == Principal(
        id=3, email="amy@x.com", name="Amy", role=Role.CREATOR, is_verified=False
    )
    assert not hasattr(principal, "password_hash")


def test_principal_requires_persisted_account() -> None:
    with pytest.raises(ValueError):
        Principal.from_account(Account(name="Amy", email="amy@x.com", password_hash="x"))
