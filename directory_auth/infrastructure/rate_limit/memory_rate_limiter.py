import math
import time
from typing import Callable, Dict, Any

from ...application.ports.rate_limiter import RateLimiter

PRUNE_INTERVAL_SECONDS = 60


class InMemoryRateLimiter(RateLimiter):
    """Fixed-window counter per key; process-local.

    Windows that have closed are dropped at most once per prune interval.
    """

    def __init__(self, clock: Callable[[], float] = time.time,
                 prune_interval_seconds: int = PRUNE_INTERVAL_SECONDS) -> None:
        self._store: Dict[str, Any] = {}
        self._clock = clock
        self.prune_interval_seconds = prune_interval_seconds
        self._next_prune = clock() + prune_interval_seconds

    def _prune(self, now: float) -> None:
        for wk in [wk for wk, rec in self._store.items() if rec["reset_at"] <= now]:
            del self._store[wk]
        self._next_prune = now + self.prune_interval_seconds

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        now = self._clock()
        if now >= self._next_prune:
            self._prune(now)
        wk = f"{key}:{window_seconds}"
        rec = self._store.get(wk)
        if not rec or rec["reset_at"] <= now:
            self._store[wk] = {"count": 1, "reset_at": now + window_seconds}
            return True
        rec["count"] += 1
        return rec["count"] <= max_requests

    def retry_after(self, key: str, window_seconds: int) -> int:
        rec = self._store.get(f"{key}:{window_seconds}")
        if not rec:
            return 0
        return max(0, math.ceil(rec["reset_at"] - self._clock()))
