from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    attempts: int
    retry_after: int = 0


class AttemptTracker(Protocol):
    """Counts failed attempts per identifier and locks it past a threshold."""

    def status(self, identifier: str) -> LockoutStatus:
        ...

    def record_failure(self, identifier: str) -> LockoutStatus:
        ...

    def clear(self, identifier: str) -> None:
        ...
