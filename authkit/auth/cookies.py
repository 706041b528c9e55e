"""Session cookie handling."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from ..config import AuthConfig


SESSION_COOKIE_NAME = "token"
SESSION_COOKIE_PATH = "/"


@dataclass(frozen=True)
class CookiePolicy:
    """Attributes shared by the set and clear operations.

    Browsers only drop a cookie when the clearing header repeats the name,
    path and flags it was set with, so both go through this one structure.
    """

    name: str
    path: str
    max_age: int
    httponly: bool
    secure: bool
    samesite: str

    @classmethod
    def from_config(cls, config: AuthConfig) -> "CookiePolicy":
        return cls(
            name=SESSION_COOKIE_NAME,
            path=SESSION_COOKIE_PATH,
            max_age=config.session_ttl_seconds,
            httponly=True,
            secure=config.cookie_secure,
            samesite=config.cookie_samesite,
        )


class SessionCarrier:
    def __init__(self, config: AuthConfig) -> None:
        self.policy = CookiePolicy.from_config(config)

    def attach(self, response: Response, token: str) -> None:
        """Attach the session ``token`` to ``response`` as a secure cookie."""

        self._write(response, token, max_age=self.policy.max_age)

    def clear(self, response: Response) -> None:
        """Expire the session cookie on ``response``."""

        self._write(response, "", max_age=0)

    def extract(self, request: HTTPConnection) -> Optional[str]:
        token = request.cookies.get(self.policy.name)
        return token or None

    def _write(self, response: Response, value: str, *, max_age: int) -> None:
        response.set_cookie(
            self.policy.name,
            value,
            max_age=max_age,
            expires=max_age,
            path=self.policy.path,
            httponly=self.policy.httponly,
            secure=self.policy.secure,
            samesite=self.policy.samesite,  # type: ignore[arg-type]
        )


__all__ = ["CookiePolicy", "SESSION_COOKIE_NAME", "SessionCarrier"]
