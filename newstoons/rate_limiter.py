# rate_limiter.py
import itertools
import threading
import time
from typing import Callable, List, Optional, Tuple

from .config import IMAGE_GENERATION_LIMIT, IMAGE_GENERATION_WINDOW


class SlidingWindowRateLimiter:
    """At most ``limit`` events in any trailing ``window`` seconds.

    ``try_reserve`` checks and records in one step so concurrent requests
    cannot both take the last slot. A reservation can be handed back with
    ``release`` when the work it guarded failed, or re-stamped with ``commit``
    when it succeeded so the window counts from completion.
    """

    def __init__(self, limit: int = IMAGE_GENERATION_LIMIT, window: float = IMAGE_GENERATION_WINDOW,
                 clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window = window
        self.clock = clock
        self._events: List[Tuple[float, int]] = []
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        self._events = [(ts, tok) for ts, tok in self._events if now - ts < self.window]

    def can_generate(self) -> bool:
        with self._lock:
            self._prune(self.clock())
            return len(self._events) < self.limit

    def record(self) -> int:
        with self._lock:
            token = next(self._tokens)
            self._events.append((self.clock(), token))
            return token

    def try_reserve(self) -> Optional[int]:
        """Record an event if a slot is free; returns its token or None."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            if len(self._events) >= self.limit:
                return None
            token = next(self._tokens)
            self._events.append((now, token))
            return token

    def commit(self, token: Optional[int]) -> None:
        """Re-stamp a reservation with the current time once its work succeeded."""
        if token is None:
            return
        with self._lock:
            now = self.clock()
            # A render slower than the window may already have been pruned
            self._events = [(ts, tok) for ts, tok in self._events if tok != token]
            self._events.append((now, token))

    def release(self, token: Optional[int]) -> None:
        if token is None:
            return
        with self._lock:
            self._events = [(ts, tok) for ts, tok in self._events if tok != token]

    def time_until_next(self) -> float:
        """Seconds until a slot frees up; 0 when one is free now."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            if len(self._events) < self.limit:
                return 0.0
            oldest = min(ts for ts, _ in self._events)
            return max(0.0, self.window - (now - oldest))

    def remaining(self) -> int:
        with self._lock:
            self._prune(self.clock())
            return max(0, self.limit - len(self._events))

    def reset(self) -> None:
        with self._lock:
            self._events = []
