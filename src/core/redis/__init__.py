"""
Redis infrastructure for Rankstream.

Exports
-------
RedisService - process-wide async client with lifecycle and health checks

Example Usage
-------------
>>> await RedisService.initialize()
>>> client = RedisService.client()
>>> is_healthy = await RedisService.health_check()
>>> await RedisService.shutdown()
"""

from __future__ import annotations

from src.core.redis.service import RedisService

__all__ = [
    "RedisService",
]
