"""Request and response bodies for the HTTP API."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Registration payload; emptiness and length are checked by the service."""

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    bio: Optional[str] = None
    photo: Optional[str] = Field(default=None, max_length=512)

    model_config = ConfigDict(extra="ignore")


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class AccountResponse(BaseModel):
    """Public projection of an account."""

    id: int
    name: str
    email: str
    role: str
    photo: str
    bio: str
    is_verified: bool = Field(..., alias="isVerified")

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    message: str


__all__ = [
    "AccountResponse",
    "ChangePasswordRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "MessageResponse",
    "ProfileUpdateRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
]
