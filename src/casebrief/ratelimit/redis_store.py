"""Redis-backed sliding-window counter store.

Shares quotas between worker processes and hosts.  Requires the 'redis'
extra: pip install casebrief[redis]
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from casebrief.exceptions import CounterStoreError
from casebrief.models.rate_limit import RateLimitWindow

from .store import _to_datetime

logger = logging.getLogger(__name__)

# KEYS[1]: counter key.
# ARGV: now, cutoff, limit, member, ttl in milliseconds.
_HIT_SCRIPT = """
local key = KEYS[1]
redis.call('ZREMRANGEBYSCORE', key, '-inf', ARGV[2])
local count = redis.call('ZCARD', key)
local admitted = 0
if count < tonumber(ARGV[3]) then
    redis.call('ZADD', key, ARGV[1], ARGV[4])
    count = count + 1
    admitted = 1
end
if count > 0 then
    redis.call('PEXPIRE', key, ARGV[5])
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = ''
if #oldest > 0 then
    oldest_score = oldest[2]
end
return {admitted, count, oldest_score}
"""


def _redis_errors() -> tuple[type[Exception], ...]:
    """Exception types raised by the redis client for connection and command failures."""
    try:
        import redis
    except ImportError:
        return (OSError,)
    return (redis.RedisError, OSError)


def _window(
    key: str,
    now: float,
    limit: int,
    window_seconds: float,
    count: int,
    oldest: float | None,
    *,
    admitted: bool,
) -> RateLimitWindow:
    reset_at = oldest + window_seconds if oldest is not None else now + window_seconds
    return RateLimitWindow(
        key=key,
        window_start=_to_datetime(now - window_seconds),
        count=count,
        limit=limit,
        reset_time=_to_datetime(reset_at),
        admitted=admitted,
    )


class RedisCounterStore:
    """Sliding-log counters kept in Redis sorted sets.

    Each key is a sorted set of admitted request timestamps.  ``hit`` runs a
    single Lua script that prunes expired members, counts the rest and adds
    the request only when it fits, so concurrent workers never over-admit.
    Keys carry a TTL of one window and vanish on their own once idle.

    Implements the ``CounterStore`` protocol.  Connection and command
    failures are raised as ``CounterStoreError``.

    Usage::

        store = RedisCounterStore.from_url("redis://localhost:6379/0")
        gate = AdmissionGate(store)

    Parameters:
        client: A ``redis.Redis`` client.
        clock: Source of the current time in epoch seconds.  Workers sharing
            a store should share a clock source (NTP-synchronised hosts).
    """

    __slots__ = ("_client", "_clock", "_errors", "_hit_script")

    def __init__(self, client: Any, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._clock = clock
        self._errors = _redis_errors()
        self._hit_script = client.register_script(_HIT_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        clock: Callable[[], float] = time.time,
        socket_timeout: float = 1.0,
    ) -> RedisCounterStore:
        """Connect lazily to the Redis server at ``url``.

        A short socket timeout keeps an unreachable server from stalling
        admission checks; the gate lets requests through when it fails.
        """
        try:
            import redis
        except ImportError:
            msg = (
                "redis is required for RedisCounterStore. "
                "Install it with: pip install casebrief[redis]"
            )
            raise ImportError(msg) from None
        client = redis.Redis.from_url(
            url, socket_timeout=socket_timeout, socket_connect_timeout=socket_timeout,
        )
        return cls(client, clock=clock)

    @property
    def client(self) -> Any:
        return self._client

    def _unavailable(self, action: str, key: str, exc: Exception) -> CounterStoreError:
        msg = f"Redis counter store failed to {action} {key!r}: {exc}"
        return CounterStoreError(msg)

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        now = self._clock()
        member = f"{now}:{uuid.uuid4().hex}"
        args = [now, now - window_seconds, limit, member, max(1, int(window_seconds * 1000))]
        try:
            admitted, count, oldest = self._hit_script(keys=[key], args=args)
        except self._errors as exc:
            raise self._unavailable("update", key, exc) from exc
        return _window(
            key, now, limit, window_seconds, int(count), float(oldest) if oldest else None,
            admitted=bool(admitted),
        )

    def peek(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        now = self._clock()
        try:
            pipe = self._client.pipeline()
            pipe.zremrangebyscore(key, "-inf", now - window_seconds)
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            _, count, oldest = pipe.execute()
        except self._errors as exc:
            raise self._unavailable("read", key, exc) from exc
        count = int(count)
        return _window(
            key, now, limit, window_seconds, count, float(oldest[0][1]) if oldest else None,
            admitted=count < limit,
        )

    def reset(self, pattern: str) -> int:
        removed = 0
        try:
            for key in self._client.scan_iter(match=pattern, count=500):
                removed += int(self._client.delete(key))
        except self._errors as exc:
            raise self._unavailable("reset", pattern, exc) from exc
        if removed:
            logger.info("Reset %d rate limit counter(s) matching %r", removed, pattern)
        return removed

    def __repr__(self) -> str:
        return f"{type(self).__name__}(client={self._client!r})"
