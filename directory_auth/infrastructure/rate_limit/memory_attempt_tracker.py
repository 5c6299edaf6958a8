import math
import time
from typing import Callable, Dict, Any

from ...application.ports.attempt_tracker import AttemptTracker, LockoutStatus

MAX_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60
RESET_WINDOW_SECONDS = 15 * 60


class InMemoryAttemptTracker(AttemptTracker):
    """Failed-attempt counter with lockout, process-local.

    Counts reset after RESET_WINDOW_SECONDS without a failure or once a
    lockout has run out. Each recorded failure also drops every entry that
    has reset this way.
    """

    def __init__(self, max_attempts: int = MAX_ATTEMPTS, lockout_seconds: int = LOCKOUT_SECONDS,
                 reset_window_seconds: int = RESET_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.time) -> None:
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.reset_window_seconds = reset_window_seconds
        self._clock = clock
        self._store: Dict[str, Any] = {}

    def _current(self, identifier: str, now: float):
        entry = self._store.get(identifier)
        if not entry:
            return None
        if entry["lockout_until"] and entry["lockout_until"] <= now:
            del self._store[identifier]
            return None
        if not entry["lockout_until"] and entry["last_attempt"] < now - self.reset_window_seconds:
            del self._store[identifier]
            return None
        return entry

    def _status(self, entry, now: float) -> LockoutStatus:
        if not entry:
            return LockoutStatus(locked=False, attempts=0)
        if entry["lockout_until"]:
            return LockoutStatus(locked=True, attempts=entry["attempts"],
                                 retry_after=math.ceil(entry["lockout_until"] - now))
        return LockoutStatus(locked=False, attempts=entry["attempts"])

    def status(self, identifier: str) -> LockoutStatus:
        now = self._clock()
        return self._status(self._current(identifier, now), now)

    def _prune(self, now: float) -> None:
        for identifier in list(self._store):
            self._current(identifier, now)

    def record_failure(self, identifier: str) -> LockoutStatus:
        now = self._clock()
        self._prune(now)
        entry = self._current(identifier, now) or {"attempts": 0, "lockout_until": None, "last_attempt": now}
        entry["attempts"] += 1
        entry["last_attempt"] = now
        if entry["attempts"] >= self.max_attempts and not entry["lockout_until"]:
            entry["lockout_until"] = now + self.lockout_seconds
        self._store[identifier] = entry
        return self._status(entry, now)

    def clear(self, identifier: str) -> None:
        self._store.pop(identifier, None)
