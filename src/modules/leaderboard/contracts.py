"""
Store contracts for the ingestion pipeline and the rank reconciler.

The pipeline and reconciler depend on these shapes only; the Redis and
PostgreSQL adapters satisfy them structurally, as do the in-memory fakes in
the test suite.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ScoredRow:
    """One durable row as seen by the reconciler's ordered scan."""

    subject_id: str
    score: int
    rank: Optional[int]


@runtime_checkable
class FastRankingStore(Protocol):
    async def update(self, subject_id: str, score: int) -> None:
        """Set the subject's score, replacing any previous one."""
        ...


@runtime_checkable
class DurableStore(Protocol):
    async def upsert(self, subject_id: str, label: str, score: int) -> None:
        """Insert or overwrite label and score. Never touches rank."""
        ...

    async def scan_ordered_by_score_desc(self) -> List[ScoredRow]:
        """All rows, score descending then subject_id ascending."""
        ...

    async def set_rank(self, subject_id: str, rank: int) -> None:
        ...
