"""Per-key exponential backoff for repeatedly failing upstream lookups."""

from __future__ import annotations

import time
from typing import Callable, Iterable


class FailureBackoff:
    """Track consecutive failures per key and block retries until a delay elapses.

    The delay after the n-th consecutive failure is ``base * 2 ** (n - 1)``
    capped at ``cap``, so it never decreases while failures continue.
    """

    def __init__(
        self,
        *,
        base_seconds: float = 600.0,
        cap_seconds: float = 21600.0,
        time_fn: Callable[[], float] | None = None,
    ):
        if base_seconds <= 0:
            raise ValueError("base_seconds must be > 0")
        if cap_seconds < base_seconds:
            raise ValueError("cap_seconds must be >= base_seconds")

        self.base_seconds = base_seconds
        self.cap_seconds = cap_seconds
        self._time_fn = time_fn or time.monotonic
        self._failures: dict[str, int] = {}
        self._blocked_until: dict[str, float] = {}

    def is_blocked(self, key: str) -> bool:
        """Return True while the key is still inside its backoff delay."""
        blocked_until = self._blocked_until.get(key)
        if blocked_until is None:
            return False
        return self._time_fn() < blocked_until

    def record_failure(self, key: str) -> float:
        """Record a failed attempt and return the delay before the next one."""
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        delay = self.delay_for(failures)
        self._blocked_until[key] = self._time_fn() + delay
        return delay

    def record_success(self, key: str) -> None:
        self.forget(key)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)
        self._blocked_until.pop(key, None)

    def retain(self, keys: Iterable[str]) -> None:
        """Drop state for every tracked key not in ``keys``."""
        keep = set(keys)
        for key in self.tracked_keys() - keep:
            self.forget(key)

    def tracked_keys(self) -> set[str]:
        return self._failures.keys() | self._blocked_until.keys()

    def failure_count(self, key: str) -> int:
        return self._failures.get(key, 0)

    def delay_for(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        exponent = min(failures - 1, 32)
        return min(self.base_seconds * (2**exponent), self.cap_seconds)

    def seconds_until_retry(self, key: str) -> float:
        blocked_until = self._blocked_until.get(key)
        if blocked_until is None:
            return 0.0
        remaining = blocked_until - self._time_fn()
        return remaining if remaining > 0 else 0.0
