"""Throttling of repeated failed logins."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Deque, Dict, Optional

from ..config import settings
from .errors import TooManyAttempts
from .tokens import Clock, utcnow


@dataclass
class RateLimitState:
    blocked: bool
    retry_after: int = 0


class LoginRateLimiter:
    """Count failures per client inside a sliding window and impose a cooldown.

    This is the only in-process mutable state shared between requests, so every
    access goes through ``_lock``.
    """

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        block_seconds: int,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")
        if block_seconds <= 0:
            raise ValueError("block_seconds must be greater than zero")

        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._block = timedelta(seconds=block_seconds)
        self._clock: Clock = clock or utcnow
        self._failures: Dict[str, Deque[datetime]] = {}
        self._blocked_until: Dict[str, datetime] = {}
        self._next_sweep: Optional[datetime] = None
        self._lock = Lock()

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._failures.keys() | self._blocked_until.keys())

    def _state_locked(self, client: str, now: datetime) -> RateLimitState:
        blocked_until = self._blocked_until.get(client)
        if blocked_until is not None:
            if blocked_until > now:
                retry_after = int((blocked_until - now).total_seconds())
                return RateLimitState(blocked=True, retry_after=max(retry_after, 1))
            del self._blocked_until[client]

        failures = self._failures.get(client)
        if failures:
            threshold = now - self._window
            while failures and failures[0] < threshold:
                failures.popleft()
            if not failures:
                del self._failures[client]
        return RateLimitState(blocked=False)

    def _sweep_locked(self, now: datetime) -> None:
        """Drop clients whose failures and cooldown have all lapsed."""

        if self._next_sweep is not None and now < self._next_sweep:
            return
        self._next_sweep = now + self._window
        threshold = now - self._window
        for client in [key for key, times in self._failures.items() if times[-1] < threshold]:
            del self._failures[client]
        for client in [key for key, until in self._blocked_until.items() if until <= now]:
            del self._blocked_until[client]

    def status(self, client: str) -> RateLimitState:
        with self._lock:
            return self._state_locked(client, self._clock())

    def ensure_allowed(self, client: str) -> None:
        """Raise :class:`TooManyAttempts` while ``client`` is cooling down."""

        state = self.status(client)
        if state.blocked:
            raise TooManyAttempts(state.retry_after)

    def register_failure(self, client: str) -> RateLimitState:
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            state = self._state_locked(client, now)
            if state.blocked:
                return state

            failures = self._failures.setdefault(client, deque())
            failures.append(now)
            if len(failures) >= self._max_attempts:
                self._blocked_until[client] = now + self._block
                del self._failures[client]
                return RateLimitState(
                    blocked=True, retry_after=max(int(self._block.total_seconds()), 1)
                )
            return RateLimitState(blocked=False)

    def register_success(self, client: str) -> None:
        with self._lock:
            self._failures.pop(client, None)
            self._blocked_until.pop(client, None)


_login_rate_limiter: LoginRateLimiter | None = None


def get_login_rate_limiter() -> LoginRateLimiter:
    """Return the process-wide limiter configured from settings."""

    return _login_rate_limiter or reset_login_rate_limiter()


def reset_login_rate_limiter(limiter: Optional[LoginRateLimiter] = None) -> LoginRateLimiter:
    """Replace the limiter, primarily for startup and tests."""

    global _login_rate_limiter
    _login_rate_limiter = limiter or LoginRateLimiter(
        max_attempts=settings.LOGIN_ATTEMPT_LIMIT,
        window_seconds=settings.LOGIN_ATTEMPT_WINDOW,
        block_seconds=settings.LOGIN_BACKOFF_SECONDS,
    )
    return _login_rate_limiter


__all__ = [
    "LoginRateLimiter",
    "RateLimitState",
    "get_login_rate_limiter",
    "reset_login_rate_limiter",
]
