"""Engine and session helpers for the account store."""
from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory for file-backed SQLite databases."""

    try:
        url = make_url(database_url)
    except Exception:
        return

    if not url.drivername.startswith("sqlite"):
        return

    database = url.database
    if not database or database in {":memory:", ""}:
        return

    path = settings.resolve_data_path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _build_engine(database_url: str) -> Engine:
    _ensure_sqlite_directory(database_url)
    kwargs: dict[str, Any] = {"future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if make_url(database_url).database in {None, "", ":memory:"}:
            # One shared connection, otherwise every session sees an empty database.
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def _build_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


engine = _build_engine(settings.AUTH_DB_URL)
SessionLocal = _build_sessionmaker(engine)


def create_tables() -> None:
    """Create any missing tables for the registered SQLModel metadata."""

    from .auth import models  # noqa: F401  (registers tables)

    SQLModel.metadata.create_all(engine)


def reset_session_factory(database_url: str | None = None) -> None:
    """Rebuild the engine/sessionmaker.

    Primarily intended for tests to isolate storage in temporary locations.
    """

    global engine, SessionLocal

    if database_url is not None:
        settings.AUTH_DB_URL = database_url
    engine.dispose()
    engine = _build_engine(settings.AUTH_DB_URL)
    SessionLocal = _build_sessionmaker(engine)


def get_session() -> Iterator[Session]:
    """Yield a database session suitable for FastAPI dependencies."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


__all__ = ["create_tables", "engine", "SessionLocal", "get_session", "reset_session_factory"]
