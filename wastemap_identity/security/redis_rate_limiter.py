"""Redis-backed sliding window rate limiter shared by all service replicas."""

from __future__ import annotations

import time
import uuid

from redis import Redis


class RedisSlidingWindowRateLimiter:
    """Sliding window limiter stored as one Redis sorted set per key.

    Members are unique attempt ids scored by their timestamp in milliseconds.
    Pruning, counting and recording run in one MULTI/EXEC transaction; a
    rejected attempt is removed again so it does not extend the window.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "identity:rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def allow(self, key: str) -> bool:
        redis_key = self._key(key)
        now_ms = int(time.time() * 1000)
        member = f"{now_ms}:{uuid.uuid4().hex}"

        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {member: now_ms})
        pipe.pexpire(redis_key, self._window_ms)
        _, current, _, _ = pipe.execute()

        if int(current) >= self._max_requests:
            self._client.zrem(redis_key, member)
            return False
        return True

    def reset(self, key: str) -> None:
        self._client.delete(self._key(key))
