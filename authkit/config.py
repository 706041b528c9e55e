import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()  # reads .env in the project root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve()
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    PUBLIC_BASE = os.getenv("PUBLIC_BASE", "http://localhost:3000")
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", PUBLIC_BASE).split(",")
        if origin.strip()
    ]
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    AUTH_DB_URL = os.getenv(
        "AUTH_DB_URL", f"sqlite:///{DATA_DIR / 'auth.sqlite3'}"
    )
    SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret")
    SESSION_TOKEN_TTL_DAYS = int(os.getenv("SESSION_TOKEN_TTL_DAYS", "30"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    VERIFY_TOKEN_TTL_HOURS = int(os.getenv("VERIFY_TOKEN_TTL_HOURS", "24"))
    RESET_TOKEN_TTL_HOURS = int(os.getenv("RESET_TOKEN_TTL_HOURS", "1"))

    COOKIE_SECURE = _env_flag("COOKIE_SECURE", "1")
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "none")

    DEFAULT_PHOTO_URL = os.getenv(
        "DEFAULT_PHOTO_URL", "https://avatars.githubusercontent.com/u/19819005?v=4"
    )
    DEFAULT_BIO = os.getenv("DEFAULT_BIO", "I am a new user.")

    INITIAL_ADMIN_EMAIL = os.getenv("INITIAL_ADMIN_EMAIL", "")
    INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")
    LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", "5"))
    LOGIN_ATTEMPT_WINDOW = int(os.getenv("LOGIN_ATTEMPT_WINDOW", "300"))
    LOGIN_BACKOFF_SECONDS = int(os.getenv("LOGIN_BACKOFF_SECONDS", "900"))

    def resolve_data_path(self, path: str | os.PathLike[str]) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.DATA_DIR / candidate
        return candidate.expanduser().resolve()

settings = Settings()


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide authentication parameters, fixed at startup."""

    session_secret: str
    session_ttl: timedelta = timedelta(days=30)
    bcrypt_rounds: int = 12
    verify_token_ttl: timedelta = timedelta(hours=24)
    reset_token_ttl: timedelta = timedelta(hours=1)
    cookie_secure: bool = True
    cookie_samesite: str = "none"
    min_password_length: int = 6
    default_photo: str = ""
    default_bio: str = ""
    public_base: str = ""
    initial_admin_email: str = ""
    initial_admin_password: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        if not self.session_secret:
            raise ValueError("session_secret must be configured")
        if self.session_ttl <= timedelta(0):
            raise ValueError("session_ttl must be positive")
        if self.cookie_samesite.lower() == "none" and not self.cookie_secure:
            raise ValueError("SameSite=None cookies must be marked secure")

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "AuthConfig":
        source = source or settings
        return cls(
            session_secret=source.SESSION_SECRET,
            session_ttl=timedelta(days=source.SESSION_TOKEN_TTL_DAYS),
            bcrypt_rounds=source.BCRYPT_ROUNDS,
            verify_token_ttl=timedelta(hours=source.VERIFY_TOKEN_TTL_HOURS),
            reset_token_ttl=timedelta(hours=source.RESET_TOKEN_TTL_HOURS),
            cookie_secure=source.COOKIE_SECURE,
            cookie_samesite=source.COOKIE_SAMESITE.lower(),
            default_photo=source.DEFAULT_PHOTO_URL,
            default_bio=source.DEFAULT_BIO,
            public_base=source.PUBLIC_BASE,
            initial_admin_email=source.INITIAL_ADMIN_EMAIL,
            initial_admin_password=source.INITIAL_ADMIN_PASSWORD,
        )

    @property
    def session_ttl_seconds(self) -> int:
        return int(self.session_ttl.total_seconds())
