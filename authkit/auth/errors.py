"""Typed failures raised by the authentication core.

Each error carries the HTTP status the routing layer should answer with and a
``detail`` message that is safe to show to the client.
"""
from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AuthError):
    status_code = 400
    default_detail = "Invalid input"


class Conflict(AuthError):
    status_code = 409
    default_detail = "Resource already exists"


class NotFound(AuthError):
    status_code = 404
    default_detail = "Not found"


class Unauthorized(AuthError):
    """Credentials were supplied but did not match."""

    status_code = 401
    default_detail = "Invalid credentials"


class Unauthenticated(AuthError):
    """No usable session accompanies the request."""

    status_code = 401
    default_detail = "Not authorized, please login"


class Forbidden(AuthError):
    status_code = 403
    default_detail = "Forbidden"


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    default_detail = "Invalid or expired token"


class TooManyAttempts(AuthError):
    status_code = 429
    default_detail = "Too many login attempts. Try again shortly."

    def __init__(self, retry_after: int, detail: Optional[str] = None) -> None:
        self.retry_after = retry_after
        super().__init__(detail)


class InfrastructureError(AuthError):
    """A collaborator (database, mail relay) failed."""

    status_code = 503
    default_detail = "Service temporarily unavailable"


class MalformedDigest(InfrastructureError):
    default_detail = "Stored credential is unreadable"


class DeliveryError(InfrastructureError):
    default_detail = "Could not deliver the message, try again later"


class TokenError(Exception):
    """Base class for session token verification failures."""


class InvalidToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


__all__ = [
    "AuthError",
    "Conflict",
    "DeliveryError",
    "ExpiredToken",
    "Forbidden",
    "InfrastructureError",
    "InvalidOrExpiredToken",
    "InvalidToken",
    "MalformedDigest",
    "NotFound",
    "TokenError",
    "TooManyAttempts",
    "Unauthenticated",
    "Unauthorized",
    "ValidationError",
]
