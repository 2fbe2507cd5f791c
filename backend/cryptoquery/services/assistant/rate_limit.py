"""Per-client request admission control."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

from ... import config

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter keyed by client identity (usually IP).

    This is a fixed window, not a sliding one: a client that bursts at the
    end of one window and again at the start of the next can get up to
    2 x max_requests through in a short span.
    """

    def __init__(
        self,
        max_requests: int = config.MAX_REQUESTS,
        window_seconds: float = config.WINDOW_MS / 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def check(self, identity: str) -> bool:
        """Record a request from `identity`. Returns False if it must be rejected."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(identity)

            if window is None or now >= window.reset_at:
                # First request or window expired
                self._windows[identity] = RateWindow(count=1, reset_at=now + self.window_seconds)
                return True

            if window.count >= self.max_requests:
                logger.info(f"[RateLimit] Rejected {identity}: {window.count}/{self.max_requests} in window")
                return False

            window.count += 1
            return True

    def status(self, identity: str) -> Dict[str, Any]:
        """Remaining quota for `identity` without recording a request."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(identity)

            if window is None or now >= window.reset_at:
                return {
                    "limit": self.max_requests,
                    "remaining": self.max_requests,
                    "reset_in_seconds": 0.0,
                }

            return {
                "limit": self.max_requests,
                "remaining": max(self.max_requests - window.count, 0),
                "reset_in_seconds": round(window.reset_at - now, 3),
            }

    def cleanup(self) -> int:
        """Drop windows that have already reset. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                identity for identity, window in self._windows.items()
                if now >= window.reset_at
            ]
            for identity in expired:
                del self._windows[identity]

        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
