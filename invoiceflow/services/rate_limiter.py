"""
InvoiceFlow - Login Rate Limiter

In-memory failed-login counter with lockout, keyed by source (client IP).

One instance is built in the application lifespan and stored on
`app.state.rate_limiter`; request handlers receive it through the
`get_rate_limiter` dependency. State is process-local and is lost on
restart.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LoginAttemptInfo:
    """Failed-attempt bookkeeping for one key."""
    attempt_count: int
    first_attempt: datetime
    last_attempt: datetime
    lockout_until: Optional[datetime] = None


class LoginRateLimiter:
    """
    Throttle authentication attempts per key.

    A key is locked once `max_attempts` failures are recorded inside
    `attempt_window`; the lockout lasts `lockout_duration`. A key whose
    window passed without reaching the threshold starts counting again.

    Handlers run both on the event loop and in the threadpool, so every
    read and write goes through one `threading.Lock`.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_duration: timedelta = timedelta(minutes=15),
        attempt_window: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self.attempt_window = attempt_window or lockout_duration
        self._clock = clock
        self._attempts: Dict[str, LoginAttemptInfo] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "LoginRateLimiter":
        return cls(
            max_attempts=settings.rate_limit_max_login_attempts,
            lockout_duration=timedelta(minutes=settings.rate_limit_lockout_minutes),
            attempt_window=timedelta(minutes=settings.rate_limit_window_minutes),
        )

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _is_expired(self, info: LoginAttemptInfo, now: datetime) -> bool:
        if info.lockout_until is not None:
            return now >= info.lockout_until
        return now - info.first_attempt >= self.attempt_window

    def _current(self, key: str, now: datetime) -> Optional[LoginAttemptInfo]:
        info = self._attempts.get(key)
        if info is not None and self._is_expired(info, now):
            del self._attempts[key]
            return None
        return info

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current time according to the limiter's clock."""
        return self._clock()

    def is_locked_out(self, key: str) -> bool:
        """True while `key` has an unexpired lockout."""
        with self._lock:
            info = self._current(key, self._clock())
            return info is not None and info.lockout_until is not None

    def record_failed_attempt(self, key: str) -> int:
        """
        Count one failed attempt for `key`.

        Returns the attempts left before lockout (0 once locked).
        """
        with self._lock:
            now = self._clock()
            info = self._current(key, now)
            if info is None:
                info = LoginAttemptInfo(attempt_count=0, first_attempt=now, last_attempt=now)
                self._attempts[key] = info

            info.attempt_count += 1
            info.last_attempt = now

            if info.attempt_count >= self.max_attempts:
                info.lockout_until = now + self.lockout_duration
                logger.warning(
                    f"Login lockout for {key} after {info.attempt_count} failed attempts "
                    f"(until {info.lockout_until.isoformat()})"
                )

            return max(0, self.max_attempts - info.attempt_count)

    def record_successful_attempt(self, key: str) -> None:
        """Forget every failure recorded for `key`."""
        with self._lock:
            self._attempts.pop(key, None)

    def get_remaining_attempts(self, key: str) -> int:
        with self._lock:
            info = self._current(key, self._clock())
            if info is None:
                return self.max_attempts
            return max(0, self.max_attempts - info.attempt_count)

    def get_lockout_expiry(self, key: str) -> Optional[datetime]:
        """When the current lockout for `key` ends, or None if not locked."""
        with self._lock:
            info = self._current(key, self._clock())
            return info.lockout_until if info is not None else None

    def cleanup_expired_entries(self) -> int:
        """Drop entries whose window or lockout has passed. Returns how many."""
        with self._lock:
            now = self._clock()
            expired = [key for key, info in self._attempts.items() if self._is_expired(info, now)]
            for key in expired:
                del self._attempts[key]

        if expired:
            logger.debug(f"Rate limiter cleanup removed {len(expired)} entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
