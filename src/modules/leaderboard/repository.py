"""
Leaderboard Repository - durable store adapter

Purpose
-------
Data access layer for the `leaderboard` table: idempotent score upserts from
the ingestion pipeline, the ordered scan and per-row rank writes used by the
reconciler, and a paged read ordered by rank.

Responsibilities
----------------
- Upsert label/score with INSERT ... ON CONFLICT DO UPDATE
- Scan all rows ordered by score DESC, subject_id ASC
- Write one row's rank per transaction
- Translate SQLAlchemy/driver failures into DatabaseError

Non-Responsibilities
--------------------
- Rank computation (handled by RankReconciler)
- Retrying failed writes
- Connection management (handled by DatabaseService)

Architecture Notes
------------------
- Every write runs inside DatabaseService.get_transaction(), so the
  database circuit breaker sees every outcome
- CircuitBreakerError propagates unchanged; callers treat it like any
  other failed write
- Upserts never touch `rank`; only set_rank() writes it
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from src.core.exceptions import DatabaseError
from src.core.logging.logger import get_logger
from src.modules.leaderboard.contracts import ScoredRow
from src.modules.leaderboard.model import LeaderboardEntry

if TYPE_CHECKING:
    from src.core.database.service import DatabaseService

logger = get_logger(__name__)

# Driver-level failures (connection refused, reset) surface as OSError
_DB_FAILURES = (SQLAlchemyError, OSError)


class LeaderboardRepository:
    """
    PostgreSQL-backed DurableStore.

    Parameters
    ----------
    database_service : Type[DatabaseService]
        The database service providing sessions and transactions
    """

    def __init__(self, database_service: Type[DatabaseService]) -> None:
        self._db_service = database_service

        logger.debug("LeaderboardRepository initialized")

    # ═══════════════════════════════════════════════════════════════════════
    # WRITE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def upsert(self, subject_id: str, label: str, score: int) -> None:
        """
        Insert the subject or overwrite its label and score.

        Re-applying the same values leaves the row unchanged apart from
        ``updated_at``.

        Raises
        ------
        DatabaseError
            On any database failure.
        CircuitBreakerError
            If the database circuit is open.
        """
        stmt = pg_insert(LeaderboardEntry).values(
            subject_id=subject_id,
            label=label,
            score=score,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LeaderboardEntry.subject_id],
            set_={
                "label": stmt.excluded.label,
                "score": stmt.excluded.score,
                "updated_at": func.now(),
            },
        )

        start_time = time.monotonic()
        try:
            async with self._db_service.get_transaction() as session:
                await session.execute(stmt)
        except _DB_FAILURES as exc:
            raise DatabaseError("upsert", exc) from exc

        logger.debug(
            "Leaderboard row upserted",
            extra={
                "subject_id": subject_id,
                "score": score,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )

    async def set_rank(self, subject_id: str, rank: int) -> None:
        """
        Write one row's rank. A missing row is not an error.

        Raises
        ------
        DatabaseError
            On any database failure.
        CircuitBreakerError
            If the database circuit is open.
        """
        stmt = (
            update(LeaderboardEntry)
            .where(LeaderboardEntry.subject_id == subject_id)
            .values(rank=rank)
        )

        try:
            async with self._db_service.get_transaction() as session:
                await session.execute(stmt)
        except _DB_FAILURES as exc:
            raise DatabaseError("set_rank", exc) from exc

    # ═══════════════════════════════════════════════════════════════════════
    # QUERY OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def scan_ordered_by_score_desc(self) -> List[ScoredRow]:
        """
        Read every row ordered by score descending, ties by subject_id.

        The result is fully materialized before returning.

        Raises
        ------
        DatabaseError
            If the read fails part-way or cannot start.
        """
        stmt = select(
            LeaderboardEntry.subject_id,
            LeaderboardEntry.score,
            LeaderboardEntry.rank,
        ).order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.subject_id.asc())

        start_time = time.monotonic()
        try:
            async with self._db_service.get_session() as session:
                result = await session.execute(stmt)
                rows = [
                    ScoredRow(subject_id=row.subject_id, score=row.score, rank=row.rank)
                    for row in result
                ]
        except _DB_FAILURES as exc:
            raise DatabaseError("scan_ordered_by_score_desc", exc) from exc

        logger.debug(
            "Leaderboard scanned",
            extra={
                "rows": len(rows),
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return rows

    async def get(self, subject_id: str) -> Optional[LeaderboardEntry]:
        try:
            async with self._db_service.get_session() as session:
                return await session.get(LeaderboardEntry, subject_id)
        except _DB_FAILURES as exc:
            raise DatabaseError("get", exc) from exc

    async def get_leaderboard(
        self, limit: int = 10, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Ranked page of the leaderboard, as of the last reconciliation.

        Rows not yet ranked sort after ranked ones.

        Example
        -------
        >>> for entry in await repository.get_leaderboard(limit=3):
        ...     print(f"{entry['rank']}. {entry['label']}: {entry['score']}")
        """
        stmt = (
            select(LeaderboardEntry)
            .order_by(
                LeaderboardEntry.rank.asc().nulls_last(),
                LeaderboardEntry.score.desc(),
                LeaderboardEntry.subject_id.asc(),
            )
            .limit(limit)
            .offset(offset)
        )

        try:
            async with self._db_service.get_session() as session:
                result = await session.execute(stmt)
                return [entry.to_dict() for entry in result.scalars()]
        except _DB_FAILURES as exc:
            raise DatabaseError("get_leaderboard", exc) from exc
