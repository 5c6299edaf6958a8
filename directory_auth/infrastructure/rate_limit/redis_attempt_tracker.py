import redis

from ...application.ports.attempt_tracker import AttemptTracker, LockoutStatus

MAX_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60
RESET_WINDOW_SECONDS = 15 * 60


class RedisAttemptTracker(AttemptTracker):
    """Failed-attempt counter shared across workers.

    ``<prefix>count:<id>`` holds the failure count (expiring after the reset
    window) and ``<prefix>lock:<id>`` exists while the identifier is locked.
    """

    def __init__(self, url: str = None, max_attempts: int = MAX_ATTEMPTS,
                 lockout_seconds: int = LOCKOUT_SECONDS,
                 reset_window_seconds: int = RESET_WINDOW_SECONDS,
                 prefix: str = "lockout:", client=None) -> None:
        self.client = client or redis.Redis.from_url(url)
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.reset_window_seconds = reset_window_seconds
        self.prefix = prefix

    def _count_key(self, identifier: str) -> str:
        return f"{self.prefix}count:{identifier}"

    def _lock_key(self, identifier: str) -> str:
        return f"{self.prefix}lock:{identifier}"

    def status(self, identifier: str) -> LockoutStatus:
        ttl = self.client.ttl(self._lock_key(identifier))
        count = int(self.client.get(self._count_key(identifier)) or 0)
        if ttl and int(ttl) > 0:
            return LockoutStatus(locked=True, attempts=count, retry_after=int(ttl))
        return LockoutStatus(locked=False, attempts=count)

    def record_failure(self, identifier: str) -> LockoutStatus:
        ck = self._count_key(identifier)
        pipe = self.client.pipeline()
        pipe.incr(ck, 1)
        pipe.expire(ck, self.reset_window_seconds)
        count, _ = pipe.execute()
        count = int(count)
        if count >= self.max_attempts:
            # NX keeps the first lockout's deadline
            self.client.set(self._lock_key(identifier), count, ex=self.lockout_seconds, nx=True)
            self.client.expire(ck, self.lockout_seconds)
            return self.status(identifier)
        return LockoutStatus(locked=False, attempts=count)

    def clear(self, identifier: str) -> None:
        self.client.delete(self._count_key(identifier), self._lock_key(identifier))
