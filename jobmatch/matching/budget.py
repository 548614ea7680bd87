"""Per-user quota for AI scoring calls."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

from jobmatch.matching.config import MatchingConfig


class CallBudget:
    """Sliding-window limit on AI calls per user key.

    Requests without a user key are not limited.
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_calls <= 0:
            raise ValueError("max_calls must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: MatchingConfig) -> CallBudget:
        return cls(
            max_calls=config.ai_calls_per_user,
            window_seconds=config.ai_budget_window_seconds,
        )

    def _prune(self, key: str, now: float) -> deque[float]:
        calls = self._calls.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while calls and calls[0] <= cutoff:
            calls.popleft()
        return calls

    def try_acquire(self, key: str | None) -> bool:
        """Record one call for `key`; False if the quota is already spent."""
        if not key:
            return True
        with self._lock:
            now = self._clock()
            calls = self._prune(key, now)
            if len(calls) >= self.max_calls:
                return False
            calls.append(now)
            return True

    def remaining(self, key: str | None) -> int | None:
        """Calls left in the current window (None when unlimited)."""
        if not key:
            return None
        with self._lock:
            calls = self._prune(key, self._clock())
            return max(0, self.max_calls - len(calls))
