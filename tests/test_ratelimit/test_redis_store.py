"""Tests for casebrief.ratelimit.redis_store against an in-process fake Redis."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from casebrief.exceptions import CounterStoreError
from casebrief.models.rate_limit import (
    AdmissionOutcome,
    Identity,
    OperationClass,
    RateLimitRule,
    default_rate_limit_policy,
)
from casebrief.protocols.counter_store import CounterStore
from casebrief.ratelimit.gate import AdmissionGate
from casebrief.ratelimit.redis_store import RedisCounterStore
from tests.conftest import FixedClock

redis = pytest.importorskip("redis")
fakeredis = pytest.importorskip("fakeredis")
pytest.importorskip("lupa")

USER = Identity(kind="user", value="42")


@pytest.fixture
def server() -> object:
    return fakeredis.FakeServer()


def _store(server: object, clock: FixedClock) -> RedisCounterStore:
    return RedisCounterStore(fakeredis.FakeRedis(server=server), clock=clock)


def _broken_client(exc: Exception) -> MagicMock:
    client = MagicMock()
    client.register_script.return_value = MagicMock(side_effect=exc)
    client.pipeline.return_value.execute.side_effect = exc
    client.scan_iter.side_effect = exc
    return client


class TestSlidingWindow:
    def test_admits_up_to_limit(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        windows = [store.hit("k", 3, 60) for _ in range(4)]
        assert [w.admitted for w in windows] == [True, True, True, False]
        assert [w.remaining for w in windows] == [2, 1, 0, 0]

    def test_rejected_hits_are_not_counted(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        for _ in range(10):
            store.hit("k", 2, 60)
        assert store.peek("k", 2, 60).count == 2

    def test_window_slides(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        store.hit("k", 2, 60)
        fixed_clock.advance(30)
        store.hit("k", 2, 60)
        assert not store.hit("k", 2, 60).admitted

        fixed_clock.advance(31)
        window = store.hit("k", 2, 60)
        assert window.admitted
        assert window.count == 2

    def test_reset_time_is_oldest_entry_plus_window(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        store.hit("k", 5, 60)
        fixed_clock.advance(10)
        window = store.hit("k", 5, 60)
        assert window.reset_time.timestamp() == fixed_clock.now - 10 + 60

    def test_peek_does_not_count(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        for _ in range(5):
            window = store.peek("k", 3, 60)
        assert window.count == 0
        assert window.remaining == 3

    def test_keys_expire_with_their_window(self, server: object, fixed_clock: FixedClock) -> None:
        client = fakeredis.FakeRedis(server=server)
        RedisCounterStore(client, clock=fixed_clock).hit("ratelimit:ip:ip:10.0.0.1", 100, 60)
        assert 0 < client.pttl("ratelimit:ip:ip:10.0.0.1") <= 60_000


class TestSharedAcrossWorkers:
    def test_two_stores_share_one_quota(self, server: object, fixed_clock: FixedClock) -> None:
        first = _store(server, fixed_clock)
        second = _store(server, fixed_clock)
        assert first.hit("ratelimit:letters:user:42", 2, 3600).admitted
        assert second.hit("ratelimit:letters:user:42", 2, 3600).admitted
        assert not first.hit("ratelimit:letters:user:42", 2, 3600).admitted
        assert second.peek("ratelimit:letters:user:42", 2, 3600).count == 2

    def test_gate_limit_plus_one(self, server: object, fixed_clock: FixedClock) -> None:
        policy = default_rate_limit_policy().with_rule(
            OperationClass.GENERATION,
            RateLimitRule(limit=3, window_seconds=3600, prefix="ratelimit:letters"),
        )
        gates = [AdmissionGate(_store(server, fixed_clock), policy, clock=fixed_clock) for _ in range(2)]
        results = [gates[i % 2].check(USER, OperationClass.GENERATION) for i in range(4)]
        assert [r.outcome for r in results] == [AdmissionOutcome.ALLOWED] * 3 + [AdmissionOutcome.REJECTED]
        assert results[3].remaining == 0


class TestReset:
    def test_glob_pattern(self, server: object, fixed_clock: FixedClock) -> None:
        store = _store(server, fixed_clock)
        store.hit("ratelimit:letters:user:1", 5, 60)
        store.hit("ratelimit:analysis:user:1", 5, 60)
        store.hit("ratelimit:letters:user:2", 5, 60)
        assert store.reset("ratelimit:*:user:1") == 2
        assert store.peek("ratelimit:letters:user:2", 5, 60).count == 1

    def test_gate_reset_identity(self, server: object, fixed_clock: FixedClock) -> None:
        gate = AdmissionGate(_store(server, fixed_clock), clock=fixed_clock)
        gate.check(USER, OperationClass.GENERATION)
        gate.check(USER, OperationClass.UPLOAD)
        assert gate.reset_identity(USER) == 2


class TestFailures:
    def test_hit_error_is_counter_store_error(self) -> None:
        store = RedisCounterStore(_broken_client(redis.ConnectionError("refused")))
        with pytest.raises(CounterStoreError, match="refused"):
            store.hit("k", 1, 60)

    def test_peek_error_is_counter_store_error(self) -> None:
        store = RedisCounterStore(_broken_client(redis.TimeoutError("timed out")))
        with pytest.raises(CounterStoreError):
            store.peek("k", 1, 60)

    def test_reset_error_is_counter_store_error(self) -> None:
        store = RedisCounterStore(_broken_client(redis.ConnectionError("refused")))
        with pytest.raises(CounterStoreError):
            store.reset("ratelimit:*")

    def test_gate_fails_open(self, fixed_clock: FixedClock) -> None:
        store = RedisCounterStore(_broken_client(redis.ConnectionError("refused")))
        result = AdmissionGate(store, clock=fixed_clock).check(USER, OperationClass.GENERATION)
        assert result.allowed
        assert result.outcome == AdmissionOutcome.DEGRADED
        assert result.limit == 0


class TestConstruction:
    def test_satisfies_counter_store(self, server: object) -> None:
        assert isinstance(RedisCounterStore(fakeredis.FakeRedis(server=server)), CounterStore)

    def test_from_url(self, server: object, fixed_clock: FixedClock) -> None:
        client = fakeredis.FakeRedis(server=server)
        with patch("redis.Redis.from_url", return_value=client) as from_url:
            store = RedisCounterStore.from_url("redis://cache:6379/0", clock=fixed_clock)
        assert from_url.call_args.args == ("redis://cache:6379/0",)
        assert store.client is client
        assert store.hit("k", 1, 60).admitted
