"""
Core infrastructure layer for Rankstream.

Purpose
-------
Provide a single, well-structured import surface for the core infrastructure
subsystems:

- Configuration (Config)
- Database subsystem (DatabaseService)
- Redis subsystem (RedisService)
- Circuit breaking for store calls (CircuitBreaker)
- Logging (structured logging, logger factory)
- Infrastructure exceptions (RankstreamInfrastructureException hierarchy)

The stream consumer lives in ``src.core.stream`` and is not re-exported here
so that importing core does not pull in the Kafka client.

Non-Responsibilities
--------------------
- Implement infra logic (delegated to submodules)
- Leaderboard behaviour (src.modules.leaderboard)
- Any side effects beyond simple re-exports
"""

from __future__ import annotations

from src.core.config import Config
from src.core.exceptions import (
    CircuitBreakerError,
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    RankingStoreError,
    RankstreamInfrastructureException,
    StreamError,
)
from src.core.logging import get_logger, setup_logging
from src.core.circuit_breaker import CircuitBreaker
from src.core.database import DatabaseService
from src.core.redis import RedisService

__all__ = [
    # Configuration
    "Config",
    # Database
    "DatabaseService",
    # Redis
    "RedisService",
    # Circuit breaking
    "CircuitBreaker",
    # Logging
    "setup_logging",
    "get_logger",
    # Infrastructure Exceptions
    "RankstreamInfrastructureException",
    "ConfigurationError",
    "DatabaseError",
    "RankingStoreError",
    "StreamError",
    "CircuitBreakerError",
    "ErrorSeverity",
]
