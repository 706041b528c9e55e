"""SQLModel tables for accounts and the audit trail."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Enum as SAEnum, JSON, String, Text
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    CREATOR = "creator"


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _timestamp_column(*, onupdate: bool = False) -> Column:
    return Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now() if onupdate else None,
    )


def _optional_timestamp_column() -> Column:
    return Column(DateTime(timezone=True), nullable=True)


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False)
    )
    name: str = Field(sa_column=Column(String(120), nullable=False))
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    role: Role = Field(
        default=Role.USER,
        sa_column=Column(
            SAEnum(Role, name="account_role", values_callable=lambda e: [m.value for m in e]),
            nullable=False,
        ),
    )
    photo: str = Field(default="", sa_column=Column(String(512), nullable=False, default=""))
    bio: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    is_verified: bool = Field(default=False, nullable=False)

    verification_token_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(128), nullable=True, index=True),
    )
    verification_token_expires_at: Optional[datetime] = Field(
        default=None, sa_column=_optional_timestamp_column()
    )
    reset_token_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(128), nullable=True, index=True),
    )
    reset_token_expires_at: Optional[datetime] = Field(
        default=None, sa_column=_optional_timestamp_column()
    )

    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamp_column(onupdate=True)
    )

    def to_public(self) -> Dict[str, Any]:
        """Return the fields that may be shown to the client."""

        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": Role(self.role).value,
            "photo": self.photo,
            "bio": self.bio,
            "isVerified": bool(self.is_verified),
        }


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: Optional[int] = Field(default=None, index=True)
    action: str = Field(sa_column=Column(String(120), nullable=False))
    summary: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )
    data: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict),
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())


__all__ = ["Account", "AuditLog", "Role"]
