"""
Ranking Store - fast store adapter over a Redis sorted set

Purpose
-------
Keep the live leaderboard in one sorted set: member = subject_id,
score = latest score. Readers get descending order straight from Redis.

Responsibilities
----------------
- ZADD the latest score for a subject (last write wins)
- Read helpers: score, 1-based rank, top N, size
- Guard every command with a CircuitBreaker
- Translate redis-py failures into RankingStoreError

Non-Responsibilities
--------------------
- Connection management (handled by RedisService)
- Durable ranks (handled by RankReconciler on PostgreSQL)

Architecture Notes
------------------
- Scores are bounded to +/-2**53 upstream so the double-precision sorted-set
  score is exact
- While the circuit is open, calls raise CircuitBreakerError without
  touching the network
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from redis.exceptions import RedisError

from src.core.circuit_breaker import CircuitBreaker
from src.core.config.config import Config
from src.core.exceptions import CircuitBreakerError, RankingStoreError
from src.core.logging.logger import get_logger

if TYPE_CHECKING:
    from redis.asyncio.client import Redis as AsyncRedis

    from src.core.redis.service import RedisService

logger = get_logger(__name__)

T = TypeVar("T")


class RankingStore:
    """
    Redis-backed FastRankingStore.

    Parameters
    ----------
    redis_service : Type[RedisService]
        Provides the shared client
    key : str, optional
        Sorted-set key; defaults to Config.LEADERBOARD_REDIS_KEY
    circuit_breaker : CircuitBreaker, optional
        Defaults to a breaker named "redis" with Config thresholds
    """

    def __init__(
        self,
        redis_service: Type[RedisService],
        key: Optional[str] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._redis_service = redis_service
        self.key = key or Config.LEADERBOARD_REDIS_KEY
        self._breaker = circuit_breaker or CircuitBreaker("redis")

        logger.debug("RankingStore initialized", extra={"redis_key": self.key})

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _execute(
        self, operation: str, command: Callable[[AsyncRedis], Awaitable[T]]
    ) -> T:
        if not await self._breaker.allow_request():
            raise CircuitBreakerError(
                self._breaker.name,
                self._breaker.consecutive_failures,
                self._breaker.retry_after(),
            )

        try:
            result = await command(self._redis_service.client())
        except (RedisError, OSError) as exc:
            await self._breaker.record_failure()
            raise RankingStoreError(operation, exc) from exc

        await self._breaker.record_success()
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # WRITE
    # ═══════════════════════════════════════════════════════════════════════

    async def update(self, subject_id: str, score: int) -> None:
        """ZADD: set the subject's score, creating the member if needed."""
        await self._execute(
            "update", lambda client: client.zadd(self.key, {subject_id: score})
        )

    # ═══════════════════════════════════════════════════════════════════════
    # READ
    # ═══════════════════════════════════════════════════════════════════════

    async def score(self, subject_id: str) -> Optional[int]:
        value = await self._execute(
            "score", lambda client: client.zscore(self.key, subject_id)
        )
        return None if value is None else int(value)

    async def rank(self, subject_id: str) -> Optional[int]:
        """1-based position in descending order, or None if absent."""
        position = await self._execute(
            "rank", lambda client: client.zrevrank(self.key, subject_id)
        )
        return None if position is None else int(position) + 1

    async def top(self, n: int) -> List[Tuple[str, int]]:
        """Highest ``n`` subjects as (subject_id, score), best first."""
        if n <= 0:
            return []
        entries: List[Tuple[Any, float]] = await self._execute(
            "top",
            lambda client: client.zrevrange(self.key, 0, n - 1, withscores=True),
        )
        return [(str(member), int(score)) for member, score in entries]

    async def size(self) -> int:
        return int(await self._execute("size", lambda client: client.zcard(self.key)))
