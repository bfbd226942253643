"""
Leaderboard Module
==================

Domain: score ingestion and rank reconciliation

Components:
- IngestionPipeline: stream -> Redis sorted set + PostgreSQL row
- RankReconciler: dense ranks recomputed from PostgreSQL
- LeaderboardRepository: durable store adapter
- RankingStore: fast store adapter
"""

from .errors import LeaderboardError, PoisonRecordError, ReconciliationScanError
from .events import ScoreEvent, parse_score_event
from .pipeline import IngestionPipeline
from .ranking_store import RankingStore
from .reconciler import RankReconciler, ReconcileResult
from .repository import LeaderboardRepository

__all__ = [
    "IngestionPipeline",
    "LeaderboardError",
    "LeaderboardRepository",
    "PoisonRecordError",
    "RankReconciler",
    "RankingStore",
    "ReconcileResult",
    "ReconciliationScanError",
    "ScoreEvent",
    "parse_score_event",
]
