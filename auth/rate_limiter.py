"""Rate limiting for login attempts.

Per-identity counters with lazy expiry: a counter that has sat idle for a
full lockout window is dropped the next time anyone looks at it, so there
is no background sweep. Every attempt stamps the time, so hammering during
a lockout keeps extending it.
"""

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass
class LoginAttempts:
    """Failed attempt counter for one identity."""

    count: int
    last_attempt_at: datetime


class RateLimiter:
    """In-process login rate limiting."""

    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = now_utc):
        self._config = config
        self._clock = clock
        self._attempts: dict[str, LoginAttempts] = {}
        self._lock = threading.Lock()

    def _key(self, identity: str) -> str:
        """Normalize identity (emails are case-insensitive)."""
        return identity.strip().lower()

    def _current(self, key: str) -> LoginAttempts | None:
        """Counter for key, dropping it if its window has elapsed. Caller holds the lock."""
        attempts = self._attempts.get(key)
        if attempts is None:
            return None
        if self._clock() - attempts.last_attempt_at >= self._config.lockout_window:
            del self._attempts[key]
            return None
        return attempts

    def _locked(self, attempts: LoginAttempts | None) -> bool:
        return attempts is not None and attempts.count >= self._config.rate_limit_attempts

    def _retry_after(self, attempts: LoginAttempts) -> int:
        unlock_at = attempts.last_attempt_at + self._config.lockout_window
        remaining = (unlock_at - self._clock()).total_seconds()
        return max(math.ceil(remaining), 1)  # At least 1 second

    def _record(self, key: str) -> LoginAttempts:
        """Increment and stamp. Caller holds the lock."""
        attempts = self._current(key)
        now = self._clock()
        if attempts is None:
            attempts = LoginAttempts(count=0, last_attempt_at=now)
            self._attempts[key] = attempts
        attempts.count += 1
        attempts.last_attempt_at = now
        return attempts

    def record_attempt(self, identity: str) -> int:
        """Increment the counter and stamp the time. Returns the new count."""
        with self._lock:
            return self._record(self._key(identity)).count

    def is_locked_out(self, identity: str) -> bool:
        """True iff count >= threshold and the window has not elapsed."""
        with self._lock:
            return self._locked(self._current(self._key(identity)))

    def check_rate_limit(self, identity: str) -> None:
        """Record an attempt, then check lockout, as one step.

        Concurrent callers for the same identity serialize here, so two
        requests can never both see a sub-threshold count.

        Raises:
            RateLimitedError: If the identity is locked out.
        """
        key = self._key(identity)
        with self._lock:
            attempts = self._record(key)

            # Lockout is judged on the attempts made before this one
            if attempts.count - 1 >= self._config.rate_limit_attempts:
                retry_after = self._retry_after(attempts)
                logger.warning("Login rate limit hit for %s (%d attempts)", key, attempts.count)
                raise RateLimitedError(retry_after_seconds=retry_after)

    def reset(self, identity: str) -> None:
        """Clear the counter (after successful login)."""
        with self._lock:
            self._attempts.pop(self._key(identity), None)

    def get_attempt_count(self, identity: str) -> int:
        """Attempts currently counted in the window."""
        with self._lock:
            attempts = self._current(self._key(identity))
            return attempts.count if attempts else 0

    def get_remaining_attempts(self, identity: str) -> int:
        """Get remaining attempts before lockout."""
        remaining = self._config.rate_limit_attempts - self.get_attempt_count(identity)
        return max(remaining, 0)

    def retry_after_seconds(self, identity: str) -> int:
        """Seconds until the lockout lifts, 0 if not locked out."""
        with self._lock:
            attempts = self._current(self._key(identity))
            if not self._locked(attempts):
                return 0
            return self._retry_after(attempts)
