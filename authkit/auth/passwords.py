"""Password hashing helpers."""
from __future__ import annotations

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from ..config import AuthConfig
from .errors import MalformedDigest


class PasswordHasher:
    """Salted bcrypt hashing with the cost taken from :class:`AuthConfig`."""

    def __init__(self, config: AuthConfig) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=config.bcrypt_rounds,
        )

    def hash(self, password: str) -> str:
        """Hash ``password`` using a strong adaptive hash."""

        if not isinstance(password, str):
            raise TypeError("password must be a string")
        return self._context.hash(password)

    def verify(self, password: str, hashed_password: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed_password``.

        A wrong password is simply ``False``; an unreadable digest raises
        :class:`MalformedDigest`.
        """

        if not hashed_password:
            raise MalformedDigest()
        if not password:
            return False
        try:
            return self._context.verify(password, hashed_password)
        except (UnknownHashError, ValueError) as exc:
            raise MalformedDigest() from exc

    def needs_rehash(self, hashed_password: str) -> bool:
        """Return ``True`` if the hash should be upgraded."""

        if not hashed_password:
            return True
        try:
            return self._context.needs_update(hashed_password)
        except (UnknownHashError, ValueError):
            return True


__all__ = ["PasswordHasher"]
