from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from authkit import database
from authkit.auth.cookies import SessionCarrier
from authkit.auth.passwords import PasswordHasher
from authkit.auth.recovery import VerificationService
from authkit.auth.repository import AccountRepository
from authkit.auth.service import AuthenticationService
from authkit.auth.tokens import ActionPurpose, TokenService
from authkit.config import AuthConfig, settings


class FrozenClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, ActionPurpose, str]] = []
        self.failed: List[Tuple[str, ActionPurpose, str]] = []
        self.fail = False

    def send(self, email: str, template_kind: ActionPurpose, token: str) -> None:
        if self.fail:
            self.failed.append((email, template_kind, token))
            raise ConnectionError("mail relay unavailable")
        self.sent.append((email, template_kind, token))

    def last_token(self, purpose: ActionPurpose) -> str:
        for _email, kind, token in reversed(self.sent):
            if kind is purpose:
                return token
        raise AssertionError(f"no {purpose.value} message sent")


@pytest.fixture()
def config() -> AuthConfig:
    return AuthConfig(
        session_secret="test-session-secret",
        bcrypt_rounds=4,
        default_photo="https://example.test/avatar.png",
        default_bio="I am a new user.",
        public_base="https://app.example.test",
    )


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def db_url(tmp_path):
    original_url = settings.AUTH_DB_URL
    url = f"sqlite:///{tmp_path / 'auth.sqlite3'}"
    database.reset_session_factory(url)
    database.create_tables()
    try:
        yield url
    finally:
        database.reset_session_factory(original_url)


@pytest.fixture()
def db_session(db_url):
    with database.SessionLocal() as session:
        yield session


@pytest.fixture()
def tokens(config: AuthConfig, clock: FrozenClock) -> TokenService:
    return TokenService(config, clock=clock)


@pytest.fixture()
def hasher(config: AuthConfig) -> PasswordHasher:
    return PasswordHasher(config)


@pytest.fixture()
def auth_service(config, db_session, hasher, tokens) -> AuthenticationService:
    return AuthenticationService(
        config,
        AccountRepository(db_session),
        hasher=hasher,
        tokens=tokens,
        carrier=SessionCarrier(config),
    )


@pytest.fixture()
def verification_service(config, db_session, hasher, tokens, notifier) -> VerificationService:
    return VerificationService(
        config,
        AccountRepository(db_session),
        hasher=hasher,
        tokens=tokens,
        notifier=notifier,
    )
