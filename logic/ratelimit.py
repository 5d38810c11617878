"""
Per-client request rate limiting.

A fixed-window counter keyed by client address. The limiter is a pure policy
object: it holds no I/O and is consulted before any rendering work starts.
Calls may come from several threads at once.

Author: Map Snapshot maintainers
Date: 2026-10-18
"""

import math
import threading
import time
from typing import Callable, Dict, Tuple


class FixedWindowRateLimiter:
    """Allow at most max_requests per client in each window.

    Expired client windows are dropped at most once per window length.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # client -> (window start, count)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_prune = clock()

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, client: str) -> Tuple[bool, int]:
        """Record one request from a client.

        Args:
            client: Client key, usually the remote address.

        Returns:
            Tuple of (allowed, retry_after_seconds). retry_after is 0 when allowed.
        """
        with self._lock:
            now = self._clock()
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)

            start, count = self._windows.get(client, (now, 0))
            if now - start >= self.window_seconds:
                start, count = now, 0

            if count >= self.max_requests:
                retry_after = max(1, math.ceil(start + self.window_seconds - now))
                return False, retry_after

            self._windows[client] = (start, count + 1)
            return True, 0

    def _prune(self, now: float):
        # Caller holds the lock.
        expired = [
            client
            for client, (start, _) in self._windows.items()
            if now - start >= self.window_seconds
        ]
        for client in expired:
            del self._windows[client]
        self._last_prune = now
