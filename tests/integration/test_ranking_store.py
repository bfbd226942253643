"""
Integration tests for RankingStore against Redis.
"""

import pytest

from src.modules.leaderboard.ranking_store import RankingStore

pytestmark = [pytest.mark.integration, pytest.mark.redis]


@pytest.fixture
def store(redis) -> RankingStore:
    return RankingStore(redis, key="leaderboard-test")


class TestRankingStore:
    async def test_update_and_read_back(self, store):
        await store.update("A", 100)
        await store.update("B", 150)

        assert await store.score("A") == 100
        assert await store.rank("B") == 1
        assert await store.rank("A") == 2
        assert await store.size() == 2

    async def test_last_write_wins(self, store):
        await store.update("A", 100)
        await store.update("B", 150)
        await store.update("A", 120)

        assert await store.top(10) == [("B", 150), ("A", 120)]

    async def test_score_can_decrease(self, store):
        await store.update("A", 500)
        await store.update("A", -5)

        assert await store.score("A") == -5

    async def test_absent_member(self, store):
        assert await store.score("ghost") is None
        assert await store.rank("ghost") is None

    async def test_exact_at_score_bound(self, store):
        await store.update("big", 2**53)

        assert await store.score("big") == 2**53
