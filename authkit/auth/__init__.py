"""Credential, session and access-control core."""

from .access import Principal, require_role, role_allows
from .cookies import SESSION_COOKIE_NAME, SessionCarrier
from .models import Account, Role
from .passwords import PasswordHasher
from .recovery import VerificationService
from .repository import AccountRepository
from .service import AuthenticationService, create_account, init_auth_storage
from .tokens import ActionPurpose, TokenService

__all__ = [
    "SESSION_COOKIE_NAME",
    "Account",
    "AccountRepository",
    "ActionPurpose",
    "AuthenticationService",
    "PasswordHasher",
    "Principal",
    "Role",
    "SessionCarrier",
    "TokenService",
    "VerificationService",
    "create_account",
    "init_auth_storage",
    "require_role",
    "role_allows",
]
