"""Background expiry check for the live session."""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ExpiryCheckScheduler:
    """
    Calls ``check`` every ``interval_seconds`` on a daemon thread.

    Errors from ``check`` are logged and the loop keeps running; stop() wakes
    the thread immediately instead of waiting out the interval.
    """

    def __init__(self, check: Callable[[], object], interval_seconds: float = 60):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._check = check
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop. No-op if already running."""
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="session-expiry-check", daemon=True
            )
            self._thread.start()
        logger.info("Session expiry checks every %ss", self._interval)

    def stop(self, timeout: float | None = 5) -> None:
        """Signal the loop to exit and wait for it."""
        with self._lock:
            thread = self._thread
            self._thread = None
        self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def run_once(self) -> None:
        try:
            self._check()
        except Exception:
            logger.exception("Session expiry check failed")

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()
