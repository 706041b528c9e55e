"""Role predicates used to gate protected operations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Iterable

from .errors import Forbidden
from .models import Account, Role


ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})
CREATOR_OR_ADMIN: frozenset[Role] = frozenset({Role.CREATOR, Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    """The authenticated account as seen by request handlers.

    Carries no password digest or token hashes.
    """

    id: int
    email: str
    name: str
    role: Role
    is_verified: bool

    @classmethod
    def from_account(cls, account: Account) -> "Principal":
        if account.id is None:
            raise ValueError("account must be persisted before it can act")
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=Role(account.role),
            is_verified=bool(account.is_verified),
        )


def role_allows(allowed: AbstractSet[Role] | Iterable[Role], role: Role | str) -> bool:
    """Return ``True`` if ``role`` is one of ``allowed``."""

    try:
        actual = Role(role)
    except ValueError:
        return False
    return actual in frozenset(Role(entry) for entry in allowed)


def require_role(principal: Principal, allowed: AbstractSet[Role] | Iterable[Role]) -> Principal:
    if not role_allows(allowed, principal.role):
        raise Forbidden("You do not have permission to perform this action")
    return principal


def require_verified(principal: Principal) -> Principal:
    if not principal.is_verified:
        raise Forbidden("Please verify your email address first")
    return principal


def is_owner_or_admin(principal: Principal, target_id: int) -> bool:
    return principal.id == target_id or role_allows(ADMIN_ONLY, principal.role)


__all__ = [
    "ADMIN_ONLY",
    "CREATOR_OR_ADMIN",
    "Principal",
    "is_owner_or_admin",
    "require_role",
    "require_verified",
    "role_allows",
]
