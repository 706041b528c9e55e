"""Registration, login and session resolution."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from .. import database
from ..config import AuthConfig
from .access import ADMIN_ONLY, CREATOR_OR_ADMIN, Principal, require_role
from .audit import record_audit_event
from .cookies import SessionCarrier
from .errors import Conflict, Forbidden, NotFound, TokenError, Unauthorized, ValidationError
from .models import Account, Role
from .passwords import PasswordHasher
from .repository import AccountRepository, normalize_email
from .throttling import LoginRateLimiter
from .tokens import TokenService


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_NAME_LENGTH = 120
MAX_BIO_LENGTH = 1000


def validate_password(config: AuthConfig, password: Optional[str]) -> str:
    if not password:
        raise ValidationError("Password is required")
    if len(password) < config.min_password_length:
        raise ValidationError(
            f"Password must be at least {config.min_password_length} characters"
        )
    return password


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


class AuthenticationService:
    def __init__(
        self,
        config: AuthConfig,
        repository: AccountRepository,
        *,
        hasher: PasswordHasher,
        tokens: TokenService,
        carrier: SessionCarrier,
        limiter: Optional[LoginRateLimiter] = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.hasher = hasher
        self.tokens = tokens
        self.carrier = carrier
        self.limiter = limiter

    # Sessions ---------------------------------------------------------------

    def register(
        self,
        response: Response,
        *,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
    ) -> Dict[str, Any]:
        if not name or not email or not password:
            raise ValidationError("All fields are required")
        clean_name = _clean_name(name)
        normalized = normalize_email(email)
        if not EMAIL_PATTERN.match(normalized):
            raise ValidationError("Please provide a valid email")
        validate_password(self.config, password)

        if self.repository.find_by_email(normalized) is not None:
            raise Conflict("User already exists")

        account = self.repository.create(
            Account(
                name=clean_name,
                email=normalized,
                password_hash=self.hasher.hash(password),
                role=Role.USER,
                photo=self.config.default_photo,
                bio=self.config.default_bio,
                is_verified=False,
            )
        )
        self._start_session(response, account)
        record_audit_event(
            self.repository.session,
            actor=account,
            action="register",
            summary=f"Account {account.email} registered",
        )
        logger.info("Registered account %s", account.id)
        return account.to_public()

    def login(
        self,
        response: Response,
        *,
        email: Optional[str],
        password: Optional[str],
        client: str = "unknown",
    ) -> Dict[str, Any]:
        if not email or not password:
            raise ValidationError("All fields are required")
        if self.limiter is not None:
            self.limiter.ensure_allowed(client)

        account = self.repository.find_by_email(email)
        if account is None:
            self._login_failed(client, normalize_email(email), reason="unknown_email")
            raise NotFound("User not found, sign up")

        if not self.hasher.verify(password, account.password_hash):
            self._login_failed(client, account.email, reason="bad_password", actor=account)
            raise Unauthorized("Invalid credentials")

        if self.limiter is not None:
            self.limiter.register_success(client)
        if self.hasher.needs_rehash(account.password_hash):
            self.repository.replace_password(
                account.id, account.password_hash, self.hasher.hash(password)
            )

        self._start_session(response, account)
        record_audit_event(
            self.repository.session,
            actor=account,
            action="login_success",
            summary=f"Account {account.email} signed in",
            data={"ip": client},
        )
        return account.to_public()

    def logout(self, response: Response, request: Optional[HTTPConnection] = None) -> None:
        """Clear the session cookie. Never fails."""

        self.carrier.clear(response)
        account_id = self.current_session(request) if request is not None else None
        if account_id is not None:
            logger.info("Account %s signed out", account_id)

    def current_session(self, request: HTTPConnection) -> Optional[int]:
        """Return the account id behind the request's cookie, if any."""

        token = self.carrier.extract(request)
        if token is None:
            return None
        try:
            return self.tokens.verify(token).account_id
        except TokenError:
            return None

    def session_status(self, request: HTTPConnection) -> bool:
        return self.current_session(request) is not None

    # Profile ------------------------------------------------------------------

    def get_profile(self, account_id: int) -> Dict[str, Any]:
        account = self.repository.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found")
        return account.to_public()

    def update_profile(
        self,
        account_id: int,
        *,
        name: Optional[str] = None,
        bio: Optional[str] = None,
        photo: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = _clean_name(name)
        if bio is not None:
            if len(bio) > MAX_BIO_LENGTH:
                raise ValidationError(f"Bio must be at most {MAX_BIO_LENGTH} characters")
            changes["bio"] = bio
        if photo is not None:
            changes["photo"] = photo.strip()
        if not changes:
            return self.get_profile(account_id)
        return self.repository.save(account_id, **changes).to_public()

    # Administration -----------------------------------------------------------

    def list_accounts(self, actor: Principal) -> List[Dict[str, Any]]:
        require_role(actor, CREATOR_OR_ADMIN)
        return [account.to_public() for account in self.repository.list_accounts()]

    def delete_account(self, actor: Principal, target_id: int) -> None:
        require_role(actor, ADMIN_ONLY)
        if actor.id == target_id:
            raise Forbidden("Administrators cannot delete their own account")
        target = self.repository.find_by_id(target_id)
        if target is None:
            raise NotFound("User not found")
        target_email = target.email
        self.repository.delete(target_id)
        record_audit_event(
            self.repository.session,
            actor=actor,
            action="account_deleted",
            summary=f"Deleted account {target_email}",
            data={"account_id": target_id},
        )
        logger.info("Account %s deleted by %s", target_id, actor.id)

    # Helpers ------------------------------------------------------------------

    def _start_session(self, response: Response, account: Account) -> None:
        self.carrier.attach(response, self.tokens.issue(account.id))

    def _login_failed(
        self,
        client: str,
        email: str,
        *,
        reason: str,
        actor: Optional[Account] = None,
    ) -> None:
        state = self.limiter.register_failure(client) if self.limiter is not None else None
        record_audit_event(
            self.repository.session,
            actor=actor,
            action="login_failed",
            summary=f"Failed login for {email}",
            data={
                "ip": client,
                "reason": reason,
                "rate_limited": bool(state and state.blocked),
            },
        )
        logger.warning("Failed login for %s from %s (%s)", email, client, reason)


def create_account(
    repository: AccountRepository,
    hasher: PasswordHasher,
    config: AuthConfig,
    *,
    name: str,
    email: str,
    password: str,
    role: Role = Role.USER,
    is_verified: bool = False,
) -> Account:
    """Create an account directly, bypassing the session flow."""

    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email cannot be empty")
    return repository.create(
        Account(
            name=name,
            email=normalized,
            password_hash=hasher.hash(password),
            role=role,
            photo=config.default_photo,
            bio=config.default_bio,
            is_verified=is_verified,
        )
    )


def init_auth_storage(config: Optional[AuthConfig] = None) -> None:
    """Ensure tables exist and seed the initial administrator."""

    database.create_tables()
    config = config or AuthConfig.from_settings()
    with database.SessionLocal() as session:
        _seed_initial_admin(AccountRepository(session), PasswordHasher(config), config)


def _seed_initial_admin(
    repository: AccountRepository, hasher: PasswordHasher, config: AuthConfig
) -> None:
    """Create the first administrator when configured and none exists."""

    email = normalize_email(config.initial_admin_email)
    password = config.initial_admin_password
    if not email or not password:
        return
    if repository.has_role(Role.ADMIN):
        return
    if repository.find_by_email(email) is not None:
        logger.warning("Initial admin %s already exists without admin role", email)
        return

    account = create_account(
        repository,
        hasher,
        config,
        name="Administrator",
        email=email,
        password=password,
        role=Role.ADMIN,
        is_verified=True,
    )
    record_audit_event(
        repository.session,
        actor=None,
        action="admin_bootstrap",
        summary=f"Seeded initial admin {account.email}",
        data={"account_id": account.id},
    )


__all__ = [
    "AuthenticationService",
    "create_account",
    "init_auth_storage",
    "validate_password",
]
