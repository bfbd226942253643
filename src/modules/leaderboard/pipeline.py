"""
Ingestion Pipeline - stream to dual-write consumer loop

Purpose
-------
Drain the score stream and apply every event to both stores: the Redis
sorted set first (visible immediately), then the PostgreSQL row (durable).
Each record is acknowledged only after both writes were attempted.

Per-record steps
----------------
1. Decode the value into a ScoreEvent. A poison record is logged,
   acknowledged and skipped; no store is touched.
2. fast_store.update(subject_id, score). A failure is logged and counted.
3. durable_store.upsert(subject_id, label, score). A failure is logged and
   counted.
4. stream.commit(record), whatever happened in steps 2 and 3.

Responsibilities
----------------
- Run the fetch/process loop until the stop event is set
- Back off after fetch failures, interruptibly
- Keep the loop alive through any per-record or per-call failure
- Bind subject/partition/offset into the log context per record
- Track counters for status reporting

Non-Responsibilities
--------------------
- Retrying store writes (redelivery after a crash and the next event for the
  subject are the recovery paths; both writes are idempotent)
- Rank computation (handled by RankReconciler)

Architecture Notes
------------------
- One pipeline per worker task, one stream consumer per pipeline
- Records of a fetched batch are processed sequentially, in order
- The stop event is checked before each fetch, never mid-batch: a fetched
  record is always written and committed before run() returns

Example Usage
-------------
>>> pipeline = IngestionPipeline(name="ingest-0")
>>> stop_event = asyncio.Event()
>>> await pipeline.run(stream, ranking_store, repository, stop_event)
>>> status = pipeline.get_status()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from src.core.config.config import Config
from src.core.exceptions import ErrorSeverity, get_error_severity
from src.core.logging.logger import LogContext, get_logger, set_log_context
from src.core.stream.consumer import StreamConsumer, StreamRecord
from src.modules.leaderboard.contracts import DurableStore, FastRankingStore
from src.modules.leaderboard.errors import PoisonRecordError
from src.modules.leaderboard.events import parse_score_event

logger = get_logger(__name__)

_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


async def wait_or_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """
    Sleep up to ``timeout`` seconds, waking early when ``stop_event`` is set.

    Returns True if the stop event is set.
    """
    if timeout <= 0:
        return stop_event.is_set()
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return stop_event.is_set()


class IngestionPipeline:
    """
    Sequential consumer loop applying score events to both stores.
    """

    def __init__(
        self,
        name: str = "ingest",
        fetch_timeout_ms: Optional[int] = None,
        fetch_error_backoff_ms: Optional[int] = None,
    ) -> None:
        self.name = name
        self._fetch_timeout_ms = (
            fetch_timeout_ms
            if fetch_timeout_ms is not None
            else Config.INGEST_FETCH_TIMEOUT_MS
        )
        self._fetch_error_backoff_ms = (
            fetch_error_backoff_ms
            if fetch_error_backoff_ms is not None
            else Config.INGEST_FETCH_ERROR_BACKOFF_MS
        )

        self._is_running: bool = False

        # Metrics
        self._records_fetched: int = 0
        self._events_applied: int = 0
        self._poison_records: int = 0
        self._fast_store_failures: int = 0
        self._durable_store_failures: int = 0
        self._commit_failures: int = 0
        self._fetch_failures: int = 0
        self._last_commit_time: Optional[float] = None

        logger.info(
            "IngestionPipeline initialized",
            extra={
                "pipeline": self.name,
                "fetch_timeout_ms": self._fetch_timeout_ms,
                "fetch_error_backoff_ms": self._fetch_error_backoff_ms,
            },
        )

    # ═══════════════════════════════════════════════════════════════════════
    # MAIN LOOP
    # ═══════════════════════════════════════════════════════════════════════

    async def run(
        self,
        stream: StreamConsumer,
        fast_store: FastRankingStore,
        durable_store: DurableStore,
        stop_event: asyncio.Event,
    ) -> None:
        """
        Fetch and process records until ``stop_event`` is set.

        Never raises because of a record, a store call, a fetch or a commit.
        """
        if self._is_running:
            logger.warning("IngestionPipeline already running", extra={"pipeline": self.name})
            return

        self._is_running = True
        logger.info("Ingestion loop started", extra={"pipeline": self.name})

        try:
            while not stop_event.is_set():
                try:
                    records = await stream.fetch(self._fetch_timeout_ms)
                except Exception as exc:
                    self._fetch_failures += 1
                    logger.error(
                        "Failed to fetch from stream; backing off",
                        extra={
                            "pipeline": self.name,
                            "backoff_ms": self._fetch_error_backoff_ms,
                            "fetch_failures": self._fetch_failures,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    await wait_or_stop(stop_event, self._fetch_error_backoff_ms / 1000)
                    continue

                self._records_fetched += len(records)

                for record in records:
                    await self.process_record(record, fast_store, durable_store, stream)

        finally:
            self._is_running = False
            logger.info(
                "Ingestion loop stopped",
                extra={"pipeline": self.name, **self._counters()},
            )

    # ═══════════════════════════════════════════════════════════════════════
    # RECORD PROCESSING
    # ═══════════════════════════════════════════════════════════════════════

    async def process_record(
        self,
        record: StreamRecord,
        fast_store: FastRankingStore,
        durable_store: DurableStore,
        stream: StreamConsumer,
    ) -> bool:
        """
        Drive one record through decode, fast write, durable write, commit.

        Returns True if the record held a valid event, False for poison.
        """
        with LogContext(
            partition=record.partition,
            offset=record.offset,
            component="ingest",
            operation="process_record",
        ):
            try:
                event = parse_score_event(record.value)
            except PoisonRecordError as exc:
                self._poison_records += 1
                logger.warning(
                    "Poison record skipped",
                    extra={
                        "pipeline": self.name,
                        "topic": record.topic,
                        "reason": exc.reason,
                        "field": exc.field,
                    },
                )
                await self._commit(stream, record)
                return False

            set_log_context(subject_id=event.subject_id)
            applied = False

            try:
                await fast_store.update(event.subject_id, event.score)
                applied = True
            except Exception as exc:
                self._fast_store_failures += 1
                self._log_store_failure("fast_store.update", exc)

            try:
                await durable_store.upsert(event.subject_id, event.label, event.score)
                applied = True
            except Exception as exc:
                self._durable_store_failures += 1
                self._log_store_failure("durable_store.upsert", exc)

            await self._commit(stream, record)
            if applied:
                self._events_applied += 1
                logger.debug(
                    "Score event applied",
                    extra={"pipeline": self.name, "score": event.score},
                )
            return True

    async def _commit(self, stream: StreamConsumer, record: StreamRecord) -> None:
        try:
            await stream.commit(record)
            self._last_commit_time = time.time()
        except Exception as exc:
            self._commit_failures += 1
            logger.error(
                "Failed to commit stream offset",
                extra={
                    "pipeline": self.name,
                    "topic": record.topic,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    def _log_store_failure(self, operation: str, exc: Exception) -> None:
        level = _SEVERITY_LEVELS.get(get_error_severity(exc), logging.ERROR)
        logger.log(
            level,
            "Store write failed; continuing",
            extra={
                "pipeline": self.name,
                "store_operation": operation,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )

    # ═══════════════════════════════════════════════════════════════════════
    # STATUS & METRICS
    # ═══════════════════════════════════════════════════════════════════════

    def _counters(self) -> Dict[str, Any]:
        return {
            "records_fetched": self._records_fetched,
            "events_applied": self._events_applied,
            "poison_records": self._poison_records,
            "fast_store_failures": self._fast_store_failures,
            "durable_store_failures": self._durable_store_failures,
            "commit_failures": self._commit_failures,
            "fetch_failures": self._fetch_failures,
        }

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_running": self._is_running,
            "last_commit_time": self._last_commit_time,
            **self._counters(),
        }
