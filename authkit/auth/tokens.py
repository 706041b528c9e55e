"""Session and action token issuance.

Session tokens are stateless: ``base64url(payload).base64url(hmac)`` where the
payload is compact JSON holding the account id, issue time and expiry. Nothing
about them is stored server side, so they stay valid until they expire.

Action tokens (email verification, password reset) are random bearer secrets.
Only their keyed digest is stored on the account, next to an expiry, and the
digest is cleared when the token is redeemed.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..config import AuthConfig
from .errors import ExpiredToken, InvalidToken


Clock = Callable[[], datetime]

ACTION_TOKEN_BYTES = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ActionPurpose(str, Enum):
    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"


@dataclass(frozen=True)
class SessionTokenData:
    """Information extracted from a verified session token."""

    account_id: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedActionToken:
    """A freshly generated action token.

    ``plaintext`` goes to the notifier and nowhere else; ``digest`` and
    ``expires_at`` are what the account stores.
    """

    purpose: ActionPurpose
    plaintext: str
    digest: str
    expires_at: datetime


class TokenService:
    def __init__(self, config: AuthConfig, *, clock: Optional[Clock] = None) -> None:
        self._config = config
        self._secret = config.session_secret.encode("utf-8")
        self._clock: Clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    # Session tokens -------------------------------------------------------

    def issue(self, account_id: int, *, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed token identifying ``account_id``."""

        if account_id is None:
            raise ValueError("account must be persisted before issuing a session token")
        now = self.now()
        expires_at = now + (expires_delta or self._config.session_ttl)
        payload = {
            "sub": int(account_id),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "nonce": secrets.token_hex(8),
        }
        payload_bytes = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
        return f"{_b64encode(payload_bytes)}.{_b64encode(self._sign(payload_bytes))}"

    def verify(self, token: str) -> SessionTokenData:
        """Return the decoded token data.

        Raises :class:`InvalidToken` for malformed or forged tokens and
        :class:`ExpiredToken` once ``exp`` is reached.
        """

        if not token or token.count(".") != 1:
            raise InvalidToken("malformed token")
        payload_b64, signature_b64 = token.split(".", 1)
        try:
            payload_bytes = _b64decode(payload_b64)
            signature = _b64decode(signature_b64)
        except (ValueError, binascii.Error) as exc:
            raise InvalidToken("malformed token") from exc

        if not hmac.compare_digest(signature, self._sign(payload_bytes)):
            raise InvalidToken("bad signature")

        try:
            payload = json.loads(payload_bytes.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidToken("malformed payload") from exc
        if not isinstance(payload, dict):
            raise InvalidToken("malformed payload")

        account_id = _coerce_int(payload.get("sub"))
        issued_ts = _coerce_int(payload.get("iat"))
        expires_ts = _coerce_int(payload.get("exp"))
        if account_id is None or issued_ts is None or expires_ts is None:
            raise InvalidToken("incomplete payload")

        expires_at = datetime.fromtimestamp(expires_ts, tz=timezone.utc)
        if expires_at <= self.now():
            raise ExpiredToken("token expired")

        return SessionTokenData(
            account_id=account_id,
            issued_at=datetime.fromtimestamp(issued_ts, tz=timezone.utc),
            expires_at=expires_at,
        )

    # Action tokens --------------------------------------------------------

    def generate(self) -> str:
        """Return a fresh high-entropy action token."""

        return secrets.token_urlsafe(ACTION_TOKEN_BYTES)

    def hash(self, plaintext: str) -> str:
        """Return the keyed digest stored in place of ``plaintext``."""

        return hmac.new(
            self._secret, b"action:" + plaintext.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def action_ttl(self, purpose: ActionPurpose) -> timedelta:
        if purpose is ActionPurpose.VERIFY_EMAIL:
            return self._config.verify_token_ttl
        return self._config.reset_token_ttl

    def issue_action_token(self, purpose: ActionPurpose) -> IssuedActionToken:
        plaintext = self.generate()
        return IssuedActionToken(
            purpose=purpose,
            plaintext=plaintext,
            digest=self.hash(plaintext),
            expires_at=self.now() + self.action_ttl(purpose),
        )

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._secret, payload, hashlib.sha256).digest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _coerce_int(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


__all__ = [
    "ActionPurpose",
    "IssuedActionToken",
    "SessionTokenData",
    "TokenService",
    "as_utc",
    "utcnow",
]
