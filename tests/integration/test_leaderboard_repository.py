"""
Integration tests for LeaderboardRepository against PostgreSQL.
"""

import pytest

from src.modules.leaderboard.repository import LeaderboardRepository

pytestmark = [pytest.mark.integration, pytest.mark.database]


@pytest.fixture
def repository(database) -> LeaderboardRepository:
    return LeaderboardRepository(database)


class TestUpsert:
    async def test_insert_then_overwrite(self, repository):
        await repository.upsert("A", "Alice", 100)
        await repository.upsert("A", "Alice B.", 120)

        entry = await repository.get("A")
        assert entry.label == "Alice B."
        assert entry.score == 120
        assert entry.rank is None
        assert len(await repository.scan_ordered_by_score_desc()) == 1

    async def test_reapply_is_idempotent(self, repository):
        await repository.upsert("A", "Alice", 100)
        await repository.upsert("A", "Alice", 100)

        rows = await repository.scan_ordered_by_score_desc()
        assert [(row.subject_id, row.score) for row in rows] == [("A", 100)]

    async def test_upsert_keeps_existing_rank(self, repository):
        await repository.upsert("A", "Alice", 100)
        await repository.set_rank("A", 4)

        await repository.upsert("A", "Alice", 90)

        entry = await repository.get("A")
        assert entry.rank == 4
        assert entry.score == 90

    async def test_large_scores_round_trip(self, repository):
        await repository.upsert("big", "", 2**53)
        await repository.upsert("neg", "", -(2**53))

        assert (await repository.get("big")).score == 2**53
        assert (await repository.get("neg")).score == -(2**53)


class TestScanAndRanks:
    async def test_scan_order(self, repository):
        for subject_id, score in (("C", 50), ("A", 50), ("B", 70), ("D", -1)):
            await repository.upsert(subject_id, subject_id.lower(), score)

        rows = await repository.scan_ordered_by_score_desc()

        assert [row.subject_id for row in rows] == ["B", "A", "C", "D"]

    async def test_set_rank_missing_row_is_noop(self, repository):
        await repository.set_rank("ghost", 1)

        assert await repository.get("ghost") is None

    async def test_get_leaderboard_orders_by_rank(self, repository):
        await repository.upsert("A", "Alice", 120)
        await repository.upsert("B", "Bob", 150)
        await repository.upsert("C", "Carol", 10)
        await repository.set_rank("B", 1)
        await repository.set_rank("A", 2)

        page = await repository.get_leaderboard(limit=10)

        # C is unranked and sorts last
        assert [(e["subject_id"], e["rank"]) for e in page] == [
            ("B", 1),
            ("A", 2),
            ("C", None),
        ]

    async def test_get_leaderboard_paging(self, repository):
        for i in range(5):
            await repository.upsert(f"S{i}", "", i)
            await repository.set_rank(f"S{i}", 5 - i)

        page = await repository.get_leaderboard(limit=2, offset=1)

        assert [e["rank"] for e in page] == [2, 3]
