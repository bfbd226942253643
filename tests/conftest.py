"""
Pytest Configuration and Fixtures for Rankstream Tests
======================================================

Purpose
-------
Centralized fixtures for the Rankstream test suite: in-memory fakes for the
stream and both stores, and testcontainers for real PostgreSQL and Redis.

Responsibilities
----------------
- In-memory StreamConsumer / FastRankingStore / DurableStore with failure
  injection and call logs
- Testcontainers setup for PostgreSQL and Redis
- DatabaseService / RedisService wired to the containers per test
- Config isolation between tests

Architecture Notes
------------------
- Unit tests use the fakes (fast, isolated)
- Integration tests use testcontainers (real database/redis)
- Containers are session-scoped; services are re-initialized per test on
  that test's event loop
"""

from __future__ import annotations

import asyncio
import os
from typing import AsyncGenerator, Dict, Generator, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from sqlalchemy import text
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.core.stream.consumer import StreamRecord
from src.modules.leaderboard.contracts import ScoredRow
from src.modules.leaderboard.events import ScoreEvent

logger = get_logger(__name__)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"
    Config.reset()


@pytest.fixture(autouse=True)
def _isolated_config() -> Generator[None, None, None]:
    """Undo any Config mutation a test makes."""
    snapshot = {
        key: value
        for key, value in vars(Config).items()
        if key.isupper() and not callable(value)
    }
    yield
    for key, value in snapshot.items():
        setattr(Config, key, value)


# ============================================================================
# IN-MEMORY FAKES (Unit Tests)
# ============================================================================


def make_record(
    value: Optional[bytes],
    offset: int = 0,
    partition: int = 0,
    topic: str = "leaderboard-scores",
) -> StreamRecord:
    return StreamRecord(topic=topic, partition=partition, offset=offset, value=value)


def event_record(
    subject_id: str, label: str, score: int, offset: int = 0, partition: int = 0
) -> StreamRecord:
    payload = ScoreEvent(subject_id=subject_id, label=label, score=score).to_payload()
    return make_record(payload, offset=offset, partition=partition)


class InMemoryStream:
    """
    StreamConsumer over a list of pre-loaded batches.

    ``calls`` logs "fetch" and ("commit", partition, offset) in order, shared
    with the fakes below when passed the same list.
    """

    def __init__(
        self,
        batches: Optional[List[List[StreamRecord]]] = None,
        calls: Optional[List] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.batches: List[List[StreamRecord]] = list(batches or [])
        self.calls: List = calls if calls is not None else []
        self.committed: List[Tuple[int, int]] = []
        self.fetch_errors: List[Exception] = []
        self.commit_errors: List[Exception] = []
        self.fetch_count = 0
        self._stop_event = stop_event

    async def fetch(self, timeout_ms: int) -> List[StreamRecord]:
        self.fetch_count += 1
        self.calls.append("fetch")
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        if self.batches:
            batch = self.batches.pop(0)
            # Signal shutdown once the last batch is handed out
            if not self.batches and self._stop_event is not None:
                self._stop_event.set()
            return batch
        if self._stop_event is not None:
            self._stop_event.set()
        await asyncio.sleep(0)
        return []

    async def commit(self, record: StreamRecord) -> None:
        self.calls.append(("commit", record.partition, record.offset))
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        self.committed.append((record.partition, record.offset))


class FakeRankingStore:
    """FastRankingStore backed by a dict; ``fail_for`` subjects raise."""

    def __init__(self, calls: Optional[List] = None) -> None:
        self.scores: Dict[str, int] = {}
        self.calls: List = calls if calls is not None else []
        self.fail_for: Set[str] = set()
        self.error: Exception = ConnectionError("redis down")

    async def update(self, subject_id: str, score: int) -> None:
        self.calls.append(("fast", subject_id, score))
        if subject_id in self.fail_for:
            raise self.error
        self.scores[subject_id] = score

    def ordered(self) -> List[Tuple[str, int]]:
        return sorted(self.scores.items(), key=lambda item: (-item[1], item[0]))


class FakeDurableStore:
    """
    DurableStore backed by a dict of subject_id -> {label, score, rank}.

    Failure injection:
    - ``upsert_failures``: subject_id -> remaining failing upsert calls
    - ``scan_error``: raised by the next scan
    - ``set_rank_fail_for``: subjects whose set_rank raises
    """

    def __init__(self, calls: Optional[List] = None) -> None:
        self.rows: Dict[str, Dict] = {}
        self.calls: List = calls if calls is not None else []
        self.upsert_failures: Dict[str, int] = {}
        self.scan_error: Optional[Exception] = None
        self.set_rank_fail_for: Set[str] = set()
        self.set_rank_calls: List[Tuple[str, int]] = []

    async def upsert(self, subject_id: str, label: str, score: int) -> None:
        self.calls.append(("durable", subject_id, score))
        remaining = self.upsert_failures.get(subject_id, 0)
        if remaining:
            self.upsert_failures[subject_id] = remaining - 1
            raise RuntimeError("postgres down")
        row = self.rows.setdefault(subject_id, {"rank": None})
        row["label"] = label
        row["score"] = score

    async def scan_ordered_by_score_desc(self) -> List[ScoredRow]:
        if self.scan_error is not None:
            raise self.scan_error
        ordered = sorted(self.rows.items(), key=lambda item: (-item[1]["score"], item[0]))
        return [
            ScoredRow(subject_id=subject_id, score=row["score"], rank=row["rank"])
            for subject_id, row in ordered
        ]

    async def set_rank(self, subject_id: str, rank: int) -> None:
        self.set_rank_calls.append((subject_id, rank))
        if subject_id in self.set_rank_fail_for:
            raise RuntimeError("row write failed")
        if subject_id in self.rows:
            self.rows[subject_id]["rank"] = rank

    def ranks(self) -> Dict[str, Optional[int]]:
        return {subject_id: row["rank"] for subject_id, row in self.rows.items()}


@pytest.fixture
def stop_event() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def calls() -> List:
    """Shared call log so ordering across stream and stores can be asserted."""
    return []


@pytest.fixture
def fast_store(calls) -> FakeRankingStore:
    return FakeRankingStore(calls)


@pytest.fixture
def durable_store(calls) -> FakeDurableStore:
    return FakeDurableStore(calls)


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(
        image="postgres:17-alpine",
        driver="asyncpg",
    )
    container.start()

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


# ============================================================================
# SERVICE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(
    postgres_container: PostgresContainer,
) -> AsyncGenerator[type[DatabaseService], None]:
    """
    DatabaseService connected to the container with an empty leaderboard.

    Scope: function (engine created on the test's own event loop)
    """
    Config.DATABASE_URL = postgres_container.get_connection_url().replace(
        "psycopg2", "asyncpg"
    )
    Config.ENVIRONMENT = "testing"

    await DatabaseService.initialize()
    await DatabaseService.create_schema()
    async with DatabaseService.get_transaction() as session:
        await session.execute(text("TRUNCATE TABLE leaderboard"))

    yield DatabaseService

    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def redis(
    redis_container: RedisContainer,
) -> AsyncGenerator[type[RedisService], None]:
    """RedisService connected to the container with an empty database."""
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    Config.REDIS_URL = f"redis://{host}:{port}/0"
    Config.REDIS_PASSWORD = None

    await RedisService.initialize()
    await RedisService.client().flushdb()

    yield RedisService

    await RedisService.shutdown()
