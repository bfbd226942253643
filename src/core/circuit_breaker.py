"""
Circuit Breaker for Store Operations
====================================

Purpose
-------
Stops a failing store from stalling the ingestion loop. After enough
consecutive failures the breaker opens and calls are rejected immediately
instead of each one waiting for a connection or statement timeout.

Responsibilities
----------------
- Track consecutive failures per guarded service
- Open the circuit when the failure threshold is reached (fail-fast)
- Admit a limited number of probe calls after the recovery timeout
- Close the circuit when a probe succeeds
- Expose a metrics snapshot for status reporting

Non-Responsibilities
--------------------
- Retrying (the ingestion loop never retries synchronously)
- Connection management (DatabaseService / RedisService)

Circuit States
--------------
**CLOSED**: calls pass through; consecutive failures are counted.

**OPEN**: calls are rejected until the recovery timeout has elapsed since the
last failure.

**HALF_OPEN**: up to ``half_open_max_requests`` probes are admitted. A success
closes the circuit, a failure re-opens it.

Configuration
-------------
- CIRCUIT_BREAKER_FAILURE_THRESHOLD (default: 5)
- CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS (default: 30000)
- CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS (default: 1)

Usage Example
-------------
>>> breaker = CircuitBreaker("postgres")
>>>
>>> if not await breaker.allow_request():
>>>     raise CircuitBreakerError("postgres", breaker.consecutive_failures,
>>>                               breaker.retry_after())
>>>
>>> try:
>>>     result = await database_operation()
>>>     await breaker.record_success()
>>> except Exception:
>>>     await breaker.record_failure()
>>>     raise
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# CIRCUIT BREAKER STATES
# ============================================================================


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    consecutive_failures: int
    last_failure_time: Optional[float]
    last_state_change_time: float
    total_requests: int
    rejected_requests: int
    half_open_test_count: int


# ============================================================================
# CIRCUIT BREAKER IMPLEMENTATION
# ============================================================================


class CircuitBreaker:
    """
    Circuit breaker guarding calls to one external service.

    State changes happen under an asyncio.Lock so concurrent ingestion
    workers sharing a store adapter see consistent transitions.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout_ms: Optional[int] = None,
        half_open_max_requests: Optional[int] = None,
    ) -> None:
        self.name = name

        self._failure_threshold = failure_threshold or int(
            getattr(Config, "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5)
        )
        self._recovery_timeout_ms = recovery_timeout_ms or int(
            getattr(Config, "CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS", 30_000)
        )
        self._half_open_max_requests = half_open_max_requests or int(
            getattr(Config, "CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS", 1)
        )

        self._state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

        self._consecutive_failures = 0
        self._failure_count = 0
        self._success_count = 0

        self._last_failure_time: Optional[float] = None
        self._last_state_change_time = time.monotonic()

        self._total_requests = 0
        self._rejected_requests = 0
        self._half_open_test_count = 0

        logger.debug(
            "Circuit breaker initialized",
            extra={
                "breaker": self.name,
                "failure_threshold": self._failure_threshold,
                "recovery_timeout_ms": self._recovery_timeout_ms,
                "half_open_max_requests": self._half_open_max_requests,
            },
        )

    # ========================================================================
    # STATE MANAGEMENT
    # ========================================================================

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    async def allow_request(self) -> bool:
        """
        Decide whether a call may proceed.

        - CLOSED: always allowed
        - OPEN: rejected until the recovery timeout passes, then HALF_OPEN
        - HALF_OPEN: allowed while probe slots remain
        """
        async with self._lock:
            self._total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if not self._should_attempt_recovery():
                    self._rejected_requests += 1
                    return False
                self._transition_to_half_open()

            if self._half_open_test_count < self._half_open_max_requests:
                self._half_open_test_count += 1
                return True

            self._rejected_requests += 1
            return False

    def retry_after(self) -> float:
        """Seconds until an OPEN circuit admits a probe (0.0 when not OPEN)."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed_ms = (time.monotonic() - self._last_failure_time) * 1000
        return max(0.0, (self._recovery_timeout_ms - elapsed_ms) / 1000)

    def _should_attempt_recovery(self) -> bool:
        if self._last_failure_time is None:
            return True

        elapsed_ms = (time.monotonic() - self._last_failure_time) * 1000
        return elapsed_ms >= self._recovery_timeout_ms

    # ========================================================================
    # REQUEST RECORDING
    # ========================================================================

    async def record_success(self) -> None:
        async with self._lock:
            self._success_count += 1
            self._consecutive_failures = 0

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to_closed()

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.CLOSED:
                if self._consecutive_failures >= self._failure_threshold:
                    self._transition_to_open()

            elif self._state == CircuitState.HALF_OPEN:
                self._transition_to_open()
                logger.warning(
                    "Circuit breaker probe failed",
                    extra={
                        "breaker": self.name,
                        "half_open_test_count": self._half_open_test_count,
                    },
                )

    # ========================================================================
    # STATE TRANSITIONS
    # ========================================================================

    def _transition_to_open(self) -> None:
        if self._state == CircuitState.OPEN:
            return
        old_state = self._state
        self._state = CircuitState.OPEN
        self._last_state_change_time = time.monotonic()

        logger.error(
            "Circuit breaker opened (fail-fast mode)",
            extra={
                "breaker": self.name,
                "old_state": old_state.value,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self._failure_threshold,
                "recovery_timeout_ms": self._recovery_timeout_ms,
            },
        )

    def _transition_to_half_open(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            return
        old_state = self._state
        self._state = CircuitState.HALF_OPEN
        self._half_open_test_count = 0
        self._last_state_change_time = time.monotonic()

        logger.info(
            "Circuit breaker entering recovery mode (HALF_OPEN)",
            extra={
                "breaker": self.name,
                "old_state": old_state.value,
                "max_test_requests": self._half_open_max_requests,
            },
        )

    def _transition_to_closed(self) -> None:
        if self._state == CircuitState.CLOSED:
            return
        old_state = self._state
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_test_count = 0
        self._last_state_change_time = time.monotonic()

        logger.info(
            "Circuit breaker closed (normal operation resumed)",
            extra={
                "breaker": self.name,
                "old_state": old_state.value,
                "total_failures": self._failure_count,
                "total_successes": self._success_count,
            },
        )

    # ========================================================================
    # METRICS & MONITORING
    # ========================================================================

    def get_metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            consecutive_failures=self._consecutive_failures,
            last_failure_time=self._last_failure_time,
            last_state_change_time=self._last_state_change_time,
            total_requests=self._total_requests,
            rejected_requests=self._rejected_requests,
            half_open_test_count=self._half_open_test_count,
        )

    async def reset(self) -> None:
        """Force the breaker back to CLOSED and zero its counters (tests, admin)."""
        async with self._lock:
            logger.warning(
                "Circuit breaker manually reset",
                extra={
                    "breaker": self.name,
                    "old_state": self._state.value,
                    "consecutive_failures": self._consecutive_failures,
                },
            )
            self._transition_to_closed()
            self._consecutive_failures = 0
            self._failure_count = 0
            self._success_count = 0
            self._total_requests = 0
            self._rejected_requests = 0
