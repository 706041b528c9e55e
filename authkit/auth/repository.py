"""Account persistence on top of SQLModel."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .errors import Conflict, InfrastructureError, NotFound
from .models import Account, Role, _utcnow
from .tokens import ActionPurpose


logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "email",
        "photo",
        "bio",
        "role",
        "is_verified",
        "password_hash",
        "verification_token_hash",
        "verification_token_expires_at",
        "reset_token_hash",
        "reset_token_expires_at",
    }
)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AccountRepository:
    """Create, look up and update :class:`Account` rows.

    Every write commits immediately. Token redemption and password
    replacement are conditional ``UPDATE`` statements so two requests racing
    on the same row cannot both succeed.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Account store failure during %s", operation)
            raise InfrastructureError() from exc

    # Lookups ----------------------------------------------------------------

    def find_by_email(self, email: str) -> Optional[Account]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        with self._guard("find_by_email"):
            return self.session.exec(
                select(Account).where(Account.email == normalized)
            ).first()

    def find_by_id(self, account_id: int) -> Optional[Account]:
        with self._guard("find_by_id"):
            return self.session.get(Account, account_id)

    def find_by_action_digest(self, purpose: ActionPurpose, digest: str) -> Optional[Account]:
        column = _digest_column(purpose)
        with self._guard("find_by_action_digest"):
            return self.session.exec(select(Account).where(column == digest)).first()

    def list_accounts(self) -> List[Account]:
        with self._guard("list_accounts"):
            return list(self.session.exec(select(Account).order_by(Account.id)).all())

    def has_role(self, role: Role) -> bool:
        with self._guard("has_role"):
            return self.session.exec(select(Account.id).where(Account.role == role)).first() is not None

    # Writes -----------------------------------------------------------------

    def create(self, account: Account) -> Account:
        account.email = normalize_email(account.email)
        try:
            self.session.add(account)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("User already exists") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Account store failure during create")
            raise InfrastructureError() from exc
        self.session.refresh(account)
        return account

    def save(self, account_id: int, **fields: Any) -> Account:
        """Apply a partial update and return the refreshed account."""

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        with self._guard("save"):
            account = self.session.get(Account, account_id)
            if account is None:
                raise NotFound("User not found")
            for key, value in fields.items():
                setattr(account, key, value)
            account.updated_at = _utcnow()
            self.session.add(account)
            self.session.commit()
            self.session.refresh(account)
            return account

    def delete(self, account_id: int) -> bool:
        with self._guard("delete"):
            account = self.session.get(Account, account_id)
            if account is None:
                return False
            self.session.delete(account)
            self.session.commit()
            return True

    def store_action_token(
        self,
        account_id: int,
        purpose: ActionPurpose,
        digest: str,
        expires_at: datetime,
    ) -> Account:
        """Record a token digest, replacing any earlier token for ``purpose``."""

        if purpose is ActionPurpose.VERIFY_EMAIL:
            return self.save(
                account_id,
                verification_token_hash=digest,
                verification_token_expires_at=expires_at,
            )
        return self.save(
            account_id,
            reset_token_hash=digest,
            reset_token_expires_at=expires_at,
        )

    def redeem_verification(self, digest: str, now: datetime) -> Optional[Account]:
        """Mark the owner of ``digest`` verified and clear the token.

        Returns ``None`` when no live token matches.
        """

        statement = (
            update(Account)
            .execution_options(synchronize_session=False)
            .where(Account.verification_token_hash == digest)
            .where(Account.verification_token_expires_at > now)
            .values(
                is_verified=True,
                verification_token_hash=None,
                verification_token_expires_at=None,
                updated_at=now,
            )
        )
        return self._redeem(ActionPurpose.VERIFY_EMAIL, digest, statement)

    def redeem_reset(self, digest: str, now: datetime, password_hash: str) -> Optional[Account]:
        statement = (
            update(Account)
            .execution_options(synchronize_session=False)
            .where(Account.reset_token_hash == digest)
            .where(Account.reset_token_expires_at > now)
            .values(
                password_hash=password_hash,
                reset_token_hash=None,
                reset_token_expires_at=None,
                updated_at=now,
            )
        )
        return self._redeem(ActionPurpose.RESET_PASSWORD, digest, statement)

    def replace_password(self, account_id: int, expected_hash: str, password_hash: str) -> bool:
        """Swap the digest only if it still equals ``expected_hash``."""

        statement = (
            update(Account)
            .execution_options(synchronize_session=False)
            .where(Account.id == account_id)
            .where(Account.password_hash == expected_hash)
            .values(password_hash=password_hash, updated_at=_utcnow())
        )
        with self._guard("replace_password"):
            result = self.session.exec(statement)  # type: ignore[call-overload]
            self.session.commit()
            self.session.expire_all()
            return result.rowcount == 1

    def _redeem(self, purpose: ActionPurpose, digest: str, statement: Any) -> Optional[Account]:
        with self._guard(f"redeem_{purpose.value}"):
            # Look up the owner first; the token columns are cleared by the update.
            account_id = self.session.exec(
                select(Account.id).where(_digest_column(purpose) == digest)
            ).first()
            if account_id is None:
                return None
            result = self.session.exec(  # type: ignore[call-overload]
                statement.where(Account.id == account_id)
            )
            self.session.commit()
            if result.rowcount != 1:
                return None
            self.session.expire_all()
            return self.session.get(Account, account_id)


def _digest_column(purpose: ActionPurpose) -> Any:
    if purpose is ActionPurpose.VERIFY_EMAIL:
        return Account.verification_token_hash
    return Account.reset_token_hash


__all__ = ["AccountRepository", "normalize_email"]
