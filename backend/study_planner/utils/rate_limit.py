"""In-memory limiter guarding the login endpoint against password guessing."""

from __future__ import annotations

import threading
import time
from collections import deque


class InMemoryRateLimiter:
    """Fixed-window attempt counter per key (client host + account).

    Keys whose attempts have all aged out of the window are dropped, and
    at most `max_keys` keys are tracked; beyond that the key with the
    oldest first attempt is evicted.
    """

    def __init__(self, max_keys: int = 10_000, clock=time.monotonic):
        self._attempts: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._max_keys = max_keys
        self._clock = clock

    def allow(self, key: str, max_attempts: int, window_seconds: int) -> tuple[bool, int]:
        """Record an attempt for `key`.

        Returns `(allowed, retry_after_seconds)`; a refused attempt is
        not recorded.
        """
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            self._sweep(cutoff)
            q = self._attempts.get(key)
            if q is not None and len(q) >= max_attempts:
                return False, max(1, int(window_seconds - (now - q[0])))
            if q is None:
                while len(self._attempts) >= self._max_keys:
                    self._attempts.pop(next(iter(self._attempts)))
                q = self._attempts[key] = deque()
            q.append(now)
        return True, 0

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._attempts):
            q = self._attempts[key]
            while q and q[0] < cutoff:
                q.popleft()
            if not q:
                del self._attempts[key]

    def forget(self, key: str) -> None:
        """Drop the attempt history for `key`, e.g. after a successful login."""
        with self._lock:
            self._attempts.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
