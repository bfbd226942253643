"""
Unit tests for RankingStore error translation and circuit breaking.

The Redis client is mocked; behaviour against a real server is covered in
tests/integration/test_ranking_store.py.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.circuit_breaker import CircuitBreaker, CircuitState
from src.core.exceptions import CircuitBreakerError, RankingStoreError
from src.core.redis.service import RedisService
from src.modules.leaderboard.ranking_store import RankingStore


@pytest.fixture
def client(mocker):
    client = mocker.AsyncMock()
    mocker.patch.object(RedisService, "client", return_value=client)
    return client


@pytest.fixture
def store(client) -> RankingStore:
    breaker = CircuitBreaker("redis", failure_threshold=2, recovery_timeout_ms=60_000)
    return RankingStore(RedisService, key="lb-test", circuit_breaker=breaker)


class TestRankingStore:
    async def test_update_issues_zadd(self, store, client):
        await store.update("A", 120)

        client.zadd.assert_awaited_once_with("lb-test", {"A": 120})

    async def test_redis_error_is_wrapped(self, store, client):
        client.zadd.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(RankingStoreError) as exc_info:
            await store.update("A", 1)

        assert exc_info.value.operation == "update"
        assert exc_info.value.is_retryable

    async def test_open_circuit_skips_network(self, store, client):
        client.zadd.side_effect = RedisConnectionError("connection refused")
        for _ in range(2):
            with pytest.raises(RankingStoreError):
                await store.update("A", 1)

        assert store.circuit_breaker.state is CircuitState.OPEN
        client.zadd.reset_mock()

        with pytest.raises(CircuitBreakerError):
            await store.update("A", 1)

        client.zadd.assert_not_awaited()

    async def test_rank_is_one_based(self, store, client):
        client.zrevrank.return_value = 0

        assert await store.rank("A") == 1

    async def test_missing_member(self, store, client):
        client.zrevrank.return_value = None
        client.zscore.return_value = None

        assert await store.rank("ghost") is None
        assert await store.score("ghost") is None

    async def test_top_converts_scores(self, store, client):
        client.zrevrange.return_value = [("B", 150.0), ("A", 120.0)]

        assert await store.top(2) == [("B", 150), ("A", 120)]
        client.zrevrange.assert_awaited_once_with("lb-test", 0, 1, withscores=True)

    async def test_top_zero_does_not_query(self, store, client):
        assert await store.top(0) == []
        client.zrevrange.assert_not_awaited()
