"""Email verification and password recovery.

Both flows use the same life cycle: a random action token is generated, its
digest and expiry are written onto the account (replacing any earlier token
for the same purpose) and the plaintext goes out through the notifier. A token
is redeemed by a conditional update that matches the digest, checks the
expiry and clears both columns in one statement, so it can succeed once.

Sessions are stateless; resetting or changing a password does not end
sessions issued before the change. They expire on their own schedule.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..config import AuthConfig
from .audit import record_audit_event
from .errors import (
    Conflict,
    DeliveryError,
    InvalidOrExpiredToken,
    NotFound,
    Unauthorized,
    ValidationError,
)
from .models import Account
from .notifier import Notifier
from .passwords import PasswordHasher
from .repository import AccountRepository
from .service import validate_password
from .tokens import ActionPurpose, TokenService, as_utc


logger = logging.getLogger(__name__)


class VerificationService:
    def __init__(
        self,
        config: AuthConfig,
        repository: AccountRepository,
        *,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: Notifier,
    ) -> None:
        self.config = config
        self.repository = repository
        self.hasher = hasher
        self.tokens = tokens
        self.notifier = notifier

    # Email verification -------------------------------------------------------

    def request_email_verification(self, account_id: int) -> None:
        account = self.repository.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found")
        if account.is_verified:
            raise Conflict("User is already verified")
        self._issue(account, ActionPurpose.VERIFY_EMAIL)

    def confirm_email_verification(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise InvalidOrExpiredToken()
        account = self.repository.redeem_verification(
            self.tokens.hash(token), self.tokens.now()
        )
        if account is None:
            logger.warning("Rejected email verification token")
            raise InvalidOrExpiredToken()
        record_audit_event(
            self.repository.session,
            actor=account,
            action="email_verified",
            summary=f"Account {account.email} verified",
        )
        logger.info("Account %s verified", account.id)
        return account.to_public()

    # Password recovery --------------------------------------------------------

    def request_password_reset(self, email: Optional[str]) -> None:
        """Send a reset link if ``email`` belongs to an account.

        The caller gets the same outcome whether or not the account exists.
        """

        if not email:
            raise ValidationError("Email is required")
        account = self.repository.find_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return
        try:
            self._issue(account, ActionPurpose.RESET_PASSWORD)
        except DeliveryError:
            # Answered like an unknown email; the stored token stays redeemable.
            return

    def confirm_password_reset(self, token: Optional[str], new_password: Optional[str]) -> None:
        if not token:
            raise InvalidOrExpiredToken()
        digest = self.tokens.hash(token)
        if not self._is_live(ActionPurpose.RESET_PASSWORD, digest):
            logger.warning("Rejected password reset token")
            raise InvalidOrExpiredToken()
        new_password = validate_password(self.config, new_password)
        account = self.repository.redeem_reset(
            digest,
            self.tokens.now(),
            self.hasher.hash(new_password),
        )
        if account is None:
            logger.warning("Rejected password reset token")
            raise InvalidOrExpiredToken()
        record_audit_event(
            self.repository.session,
            actor=account,
            action="password_reset",
            summary=f"Password reset for {account.email}",
        )
        logger.info("Password reset completed for account %s", account.id)

    def change_password(
        self,
        account_id: int,
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        if not current_password or not new_password:
            raise ValidationError("All fields are required")
        account = self.repository.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found")
        if not self.hasher.verify(current_password, account.password_hash):
            raise Unauthorized("Invalid password")
        validate_password(self.config, new_password)

        replaced = self.repository.replace_password(
            account.id, account.password_hash, self.hasher.hash(new_password)
        )
        if not replaced:
            # Another request changed the password after it was checked.
            raise Unauthorized("Invalid password")
        record_audit_event(
            self.repository.session,
            actor=account,
            action="password_changed",
            summary=f"Password changed for {account.email}",
        )

    def _is_live(self, purpose: ActionPurpose, digest: str) -> bool:
        account = self.repository.find_by_action_digest(purpose, digest)
        if account is None:
            return False
        expires_at = (
            account.verification_token_expires_at
            if purpose is ActionPurpose.VERIFY_EMAIL
            else account.reset_token_expires_at
        )
        return expires_at is not None and as_utc(expires_at) > self.tokens.now()

    def _issue(self, account: Account, purpose: ActionPurpose) -> None:
        issued = self.tokens.issue_action_token(purpose)
        self.repository.store_action_token(
            account.id, purpose, issued.digest, issued.expires_at
        )
        try:
            self.notifier.send(account.email, purpose, issued.plaintext)
        except Exception as exc:
            # The stored token stays valid; a later request reissues it.
            logger.exception("Failed to deliver %s message to account %s", purpose.value, account.id)
            raise DeliveryError() from exc
        record_audit_event(
            self.repository.session,
            actor=account,
            action=f"{purpose.value}_requested",
            summary=f"Sent {purpose.value} token to {account.email}",
        )


__all__ = ["VerificationService"]
