"""
RedisService: async Redis connection management for Rankstream

Purpose
-------
Own the process-wide redis.asyncio client used by the fast ranking store.

Responsibilities
----------------
- Initialize a singleton client backed by a connection pool
- Verify connectivity with PING on startup
- Expose health and status snapshots
- Close the pool on shutdown

Non-Responsibilities
--------------------
- Sorted-set semantics (handled by RankingStore)
- Circuit breaking of individual commands (handled by RankingStore)

Configuration Keys
------------------
- REDIS_URL             : str (default "redis://localhost:6379/0")
- REDIS_PASSWORD        : str (optional, overrides the URL's password)
- REDIS_SOCKET_TIMEOUT  : int seconds (default 5)
- REDIS_MAX_CONNECTIONS : int (default 50)

Architecture Notes
------------------
- The client is shared by every ingestion worker; redis-py's pool makes it
  safe for concurrent use
- Initialization is idempotent and guarded by an asyncio.Lock
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


def _url_scheme(url: str) -> str:
    return url.split("://")[0] if "://" in url else "unknown"


class RedisService:
    """
    Process-wide async Redis client holder.

    Usage
    -----
    >>> await RedisService.initialize()
    >>> client = RedisService.client()
    >>> await client.zadd("leaderboard", {"A": 120})
    >>> await RedisService.shutdown()
    """

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls) -> None:
        """
        Create the client and verify it with PING.

        Idempotent. Safe to call multiple times.

        Raises
        ------
        RuntimeError
            If Redis is unreachable.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            url = Config.REDIS_URL
            start_time = time.monotonic()
            client: Optional[AsyncRedis] = None

            try:
                kwargs: dict[str, Any] = {
                    "socket_timeout": Config.REDIS_SOCKET_TIMEOUT,
                    "socket_connect_timeout": Config.REDIS_SOCKET_TIMEOUT,
                    "decode_responses": True,
                    "max_connections": Config.REDIS_MAX_CONNECTIONS,
                    "retry_on_timeout": False,
                    "health_check_interval": 30,
                }
                if Config.REDIS_PASSWORD:
                    kwargs["password"] = Config.REDIS_PASSWORD

                client = AsyncRedis.from_url(url, **kwargs)
                await client.ping()  # type: ignore[misc]

                cls._client = client
                cls._is_healthy = True

                logger.info(
                    "RedisService initialized successfully",
                    extra={
                        "url_scheme": _url_scheme(url),
                        "socket_timeout_seconds": Config.REDIS_SOCKET_TIMEOUT,
                        "max_connections": Config.REDIS_MAX_CONNECTIONS,
                        "initialization_time_ms": round(
                            (time.monotonic() - start_time) * 1000, 2
                        ),
                    },
                )

            except Exception as exc:
                if client is not None:
                    await client.aclose()

                cls._client = None
                cls._is_healthy = False

                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": _url_scheme(url),
                    },
                    exc_info=True,
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call even if not initialized."""
        client = cls._client
        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        cls._client = None
        cls._is_healthy = False

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except RedisError as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        """PING Redis. Returns False instead of raising on failure."""
        if cls._client is None:
            logger.warning("Health check failed: RedisService not initialized")
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()  # type: ignore[misc]
            latency_ms = (time.monotonic() - start_time) * 1000

            cls._is_healthy = bool(pong)
            logger.debug(
                "Redis health check completed",
                extra={"healthy": cls._is_healthy, "latency_ms": round(latency_ms, 2)},
            )
            return cls._is_healthy

        except (RedisError, OSError) as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

    @classmethod
    def is_healthy(cls) -> bool:
        """Return cached health status without performing I/O."""
        return cls._is_healthy

    @classmethod
    def get_status(cls) -> dict[str, Any]:
        return {
            "initialized": cls._client is not None,
            "healthy": cls._is_healthy,
        }

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENT ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the singleton Redis client.

        Raises
        ------
        RuntimeError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise RuntimeError(
                "RedisService not initialized. Call RedisService.initialize() first."
            )
        return cls._client
