"""
Rank Reconciler - dense rank projection over the durable store

Purpose
-------
Recompute `rank` for every leaderboard row from the authoritative scores:
1, 2, 3, ... by score descending, ties broken by ascending subject_id.

Responsibilities
----------------
- Materialize the ordered scan before writing anything
- Write only the ranks that changed
- Isolate row-write failures; the pass continues
- Run passes on a fixed interval until stopped
- Report pass results and scheduler status

Non-Responsibilities
--------------------
- Locking against ingestion (rows upserted mid-pass are fixed next pass)
- Fast store ordering (Redis sorts on its own)

Configuration Keys
------------------
- RECONCILE_INTERVAL_SECONDS : int (default 30)
- RECONCILE_ON_STARTUP       : bool (default True)

Example Usage
-------------
>>> reconciler = RankReconciler()
>>> result = await reconciler.reconcile(repository)
>>> result.ok, result.updated
(True, 2)
>>> await reconciler.run_periodic(repository, stop_event)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from src.core.config.config import Config
from src.core.logging.logger import LogContext, get_logger
from src.modules.leaderboard.contracts import DurableStore, ScoredRow
from src.modules.leaderboard.errors import ReconciliationScanError
from src.modules.leaderboard.pipeline import wait_or_stop

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    total_rows: int
    updated: int
    unchanged: int
    failed: int
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "ok": self.ok}


class RankReconciler:
    """
    Computes and writes dense ranks; optionally on a schedule.
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        run_on_startup: Optional[bool] = None,
    ) -> None:
        self._interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else Config.RECONCILE_INTERVAL_SECONDS
        )
        self._run_on_startup = (
            run_on_startup if run_on_startup is not None else Config.RECONCILE_ON_STARTUP
        )

        self._is_running: bool = False
        self._passes_run: int = 0
        self._passes_aborted: int = 0
        self._last_result: Optional[ReconcileResult] = None
        self._last_pass_time: Optional[float] = None

    # ═══════════════════════════════════════════════════════════════════════
    # RECONCILIATION PASS
    # ═══════════════════════════════════════════════════════════════════════

    async def reconcile(self, durable_store: DurableStore) -> ReconcileResult:
        """
        Run one pass.

        Raises
        ------
        ReconciliationScanError
            If the scan fails; no rank has been written.
        """
        start = time.perf_counter()

        with LogContext(component="reconcile", operation="reconcile"):
            try:
                rows: List[ScoredRow] = list(
                    await durable_store.scan_ordered_by_score_desc()
                )
            except Exception as exc:
                self._passes_aborted += 1
                raise ReconciliationScanError(exc) from exc

            updated = unchanged = failed = 0

            for rank, row in enumerate(rows, start=1):
                if row.rank == rank:
                    unchanged += 1
                    continue

                try:
                    await durable_store.set_rank(row.subject_id, rank)
                    updated += 1
                except Exception as exc:
                    failed += 1
                    logger.warning(
                        "Rank write failed; row keeps its previous rank",
                        extra={
                            "subject_id": row.subject_id,
                            "rank": rank,
                            "previous_rank": row.rank,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )

            result = ReconcileResult(
                total_rows=len(rows),
                updated=updated,
                unchanged=unchanged,
                failed=failed,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )

            self._passes_run += 1
            self._last_result = result
            self._last_pass_time = time.time()

            if result.ok:
                logger.info("Reconciliation pass complete", extra=result.to_dict())
            else:
                logger.warning(
                    "Reconciliation pass complete with failed rows",
                    extra=result.to_dict(),
                )

            return result

    # ═══════════════════════════════════════════════════════════════════════
    # SCHEDULER
    # ═══════════════════════════════════════════════════════════════════════

    async def run_periodic(
        self,
        durable_store: DurableStore,
        stop_event: asyncio.Event,
        interval_seconds: Optional[float] = None,
    ) -> None:
        """
        Run passes every ``interval_seconds`` until ``stop_event`` is set.

        A failed pass is logged and the next interval is awaited.
        """
        interval = (
            interval_seconds if interval_seconds is not None else self._interval_seconds
        )

        self._is_running = True
        logger.info(
            "Reconcile scheduler started",
            extra={
                "interval_seconds": interval,
                "run_on_startup": self._run_on_startup,
            },
        )

        try:
            if self._run_on_startup and not stop_event.is_set():
                await self._run_pass(durable_store)

            while not await wait_or_stop(stop_event, interval):
                await self._run_pass(durable_store)

        finally:
            self._is_running = False
            logger.info(
                "Reconcile scheduler stopped",
                extra={
                    "passes_run": self._passes_run,
                    "passes_aborted": self._passes_aborted,
                },
            )

    async def _run_pass(self, durable_store: DurableStore) -> None:
        try:
            await self.reconcile(durable_store)

        except ReconciliationScanError as exc:
            logger.error(
                "Reconciliation pass aborted; retrying next interval",
                extra={
                    "error": str(exc.original_error),
                    "error_type": type(exc.original_error).__name__,
                },
            )

        except Exception as exc:
            logger.error(
                "Unexpected error in reconciliation pass",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

    # ═══════════════════════════════════════════════════════════════════════
    # STATUS
    # ═══════════════════════════════════════════════════════════════════════

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._is_running,
            "interval_seconds": self._interval_seconds,
            "passes_run": self._passes_run,
            "passes_aborted": self._passes_aborted,
            "last_pass_time": self._last_pass_time,
            "last_result": self._last_result.to_dict() if self._last_result else None,
        }
