"""FastAPI dependencies for authentication and authorization."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlmodel import Session

from ..config import AuthConfig
from ..database import get_session
from .access import ADMIN_ONLY, CREATOR_OR_ADMIN, Principal, require_role, require_verified
from .cookies import SessionCarrier
from .errors import Unauthenticated
from .models import Role
from .notifier import LoggingNotifier, Notifier
from .passwords import PasswordHasher
from .recovery import VerificationService
from .repository import AccountRepository
from .service import AuthenticationService
from .throttling import LoginRateLimiter, get_login_rate_limiter
from .tokens import Clock, TokenService


@dataclass(frozen=True)
class AuthComponents:
    """Stateless collaborators built once per application."""

    config: AuthConfig
    hasher: PasswordHasher
    tokens: TokenService
    carrier: SessionCarrier
    notifier: Notifier
    limiter: Optional[LoginRateLimiter]

    @classmethod
    def build(
        cls,
        config: AuthConfig,
        *,
        notifier: Optional[Notifier] = None,
        limiter: Optional[LoginRateLimiter] = None,
        clock: Optional[Clock] = None,
    ) -> "AuthComponents":
        return cls(
            config=config,
            hasher=PasswordHasher(config),
            tokens=TokenService(config, clock=clock),
            carrier=SessionCarrier(config),
            notifier=notifier or LoggingNotifier(config.public_base),
            limiter=limiter,
        )


def get_components(request: Request) -> AuthComponents:
    components = getattr(request.app.state, "auth", None)
    if components is None:
        raise RuntimeError("authentication components are not configured")
    return components


def get_repository(session: Session = Depends(get_session)) -> AccountRepository:
    return AccountRepository(session)


def get_auth_service(
    components: AuthComponents = Depends(get_components),
    repository: AccountRepository = Depends(get_repository),
) -> AuthenticationService:
    return AuthenticationService(
        components.config,
        repository,
        hasher=components.hasher,
        tokens=components.tokens,
        carrier=components.carrier,
        limiter=components.limiter or get_login_rate_limiter(),
    )


def get_verification_service(
    components: AuthComponents = Depends(get_components),
    repository: AccountRepository = Depends(get_repository),
) -> VerificationService:
    return VerificationService(
        components.config,
        repository,
        hasher=components.hasher,
        tokens=components.tokens,
        notifier=components.notifier,
    )


def get_current_account(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
) -> Principal:
    """Return the authenticated account or raise ``401``."""

    account_id = service.current_session(request)
    if account_id is None:
        raise Unauthenticated()

    account = service.repository.find_by_id(account_id)
    if account is None:
        raise Unauthenticated("User not found")

    principal = Principal.from_account(account)
    request.state.account = principal
    return principal


def require_roles(*roles: Role) -> Callable[[Principal], Principal]:
    """Build a dependency admitting only accounts whose role is in ``roles``."""

    allowed = frozenset(roles)

    def _dependency(current: Principal = Depends(get_current_account)) -> Principal:
        return require_role(current, allowed)

    return _dependency


require_admin = require_roles(*ADMIN_ONLY)
require_creator = require_roles(*CREATOR_OR_ADMIN)


def require_verified_account(current: Principal = Depends(get_current_account)) -> Principal:
    return require_verified(current)


__all__ = [
    "AuthComponents",
    "get_auth_service",
    "get_components",
    "get_current_account",
    "get_repository",
    "get_verification_service",
    "require_admin",
    "require_creator",
    "require_roles",
    "require_verified_account",
]
