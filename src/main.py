"""
Rankstream - Application Entry Point
====================================

Bootstrap
---------
- Logging and config validation
- Database initialization (+ schema)
- Redis initialization (PING verified)
- One Kafka consumer and ingestion pipeline per worker
- Reconcile scheduler
- Signal-driven graceful shutdown

Run with ``python -m src.main``. Exit status is 1 when startup fails.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.logging.logger import (
    get_logger,
    get_logging_health,
    setup_logging,
    shutdown_logging,
)
from src.core.redis.service import RedisService
from src.core.stream.consumer import KafkaStreamConsumer
from src.modules.leaderboard.pipeline import IngestionPipeline
from src.modules.leaderboard.ranking_store import RankingStore
from src.modules.leaderboard.reconciler import RankReconciler
from src.modules.leaderboard.repository import LeaderboardRepository

logger = get_logger(__name__)


@dataclass
class _Runtime:
    repository: LeaderboardRepository
    ranking_store: RankingStore
    reconciler: RankReconciler
    consumers: List[KafkaStreamConsumer] = field(default_factory=list)
    pipelines: List[IngestionPipeline] = field(default_factory=list)


# ============================================================================
# Application Bootstrap
# ============================================================================


async def _startup(runtime_slot: List[_Runtime]) -> _Runtime:
    """Initialize all infrastructure before any worker starts."""
    logger.info("========== RANKSTREAM INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    Config.validate()
    logger.info("✓ Configuration validated", extra=Config.get_config_summary())

    # Step 2: Database
    await DatabaseService.initialize()
    if not await DatabaseService.health_check():
        raise RuntimeError("Database is unreachable")
    if Config.DATABASE_CREATE_SCHEMA:
        await DatabaseService.create_schema()
    logger.info("✓ Database service initialized")

    # Step 3: Redis
    await RedisService.initialize()
    logger.info("✓ Redis service initialized")

    # Step 4: Store adapters and reconciler
    runtime = _Runtime(
        repository=LeaderboardRepository(DatabaseService),
        ranking_store=RankingStore(RedisService),
        reconciler=RankReconciler(),
    )
    runtime_slot.append(runtime)

    # Step 5: One consumer + pipeline per worker
    for index in range(Config.INGEST_WORKERS):
        consumer = KafkaStreamConsumer(client_id=f"{Config.SERVICE_NAME}-{index}")
        runtime.consumers.append(consumer)
        await consumer.start()
        runtime.pipelines.append(IngestionPipeline(name=f"ingest-{index}"))
    logger.info("✓ Stream consumers started", extra={"workers": Config.INGEST_WORKERS})

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return runtime


# ============================================================================
# Application Shutdown
# ============================================================================


async def _shutdown(runtime: Optional[_Runtime]) -> None:
    """Stop consumers, report final counters, then close Redis and the database."""
    logger.info("========== RANKSTREAM SHUTDOWN START ==========")

    if runtime is not None:
        for consumer in runtime.consumers:
            await consumer.stop()
        logger.info("✓ Stream consumers stopped")

        for pipeline in runtime.pipelines:
            logger.info("Pipeline final status", extra={"status": pipeline.get_status()})
        logger.info(
            "Reconciler final status",
            extra={"status": runtime.reconciler.get_status()},
        )
        logger.info(
            "Redis circuit breaker final state",
            extra={"breaker": asdict(runtime.ranking_store.circuit_breaker.get_metrics())},
        )

    try:
        await RedisService.shutdown()
        logger.info("✓ Redis service shut down")
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    logger.info(
        "Postgres circuit breaker final state",
        extra={"breaker": DatabaseService.get_circuit_breaker_metrics()},
    )
    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    health = get_logging_health()
    log_level = logging.WARNING if health.records_dropped else logging.INFO
    logger.log(log_level, "Logging final state", extra={"logging": asdict(health)})

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug(f"{sig.name} handler not supported on this platform")


async def _run(runtime: _Runtime, stop_event: asyncio.Event) -> None:
    tasks = [
        asyncio.create_task(
            pipeline.run(consumer, runtime.ranking_store, runtime.repository, stop_event),
            name=pipeline.name,
        )
        for pipeline, consumer in zip(runtime.pipelines, runtime.consumers)
    ]
    tasks.append(
        asyncio.create_task(
            runtime.reconciler.run_periodic(runtime.repository, stop_event),
            name="reconcile",
        )
    )

    logger.info("Rankstream running", extra={"tasks": [t.get_name() for t in tasks]})
    await stop_event.wait()
    logger.info("Stop requested; draining in-flight batches")

    results = await asyncio.gather(*tasks, return_exceptions=True)
    for task, result in zip(tasks, results):
        if isinstance(result, BaseException):
            logger.error(
                f"Task {task.get_name()} ended with an error",
                exc_info=result,
            )


async def main() -> int:
    """
    Rankstream entry point.

    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure (PostgreSQL, Redis, Kafka)
        3. Run ingestion workers and the reconcile scheduler
        4. Shut down gracefully on SIGINT/SIGTERM
    """
    setup_logging()

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    runtime_slot: List[_Runtime] = []
    exit_code = 0

    try:
        runtime = await _startup(runtime_slot)
    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        exit_code = 1
    else:
        await _run(runtime, stop_event)
    finally:
        await _shutdown(runtime_slot[0] if runtime_slot else None)
        shutdown_logging()

    return exit_code


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
