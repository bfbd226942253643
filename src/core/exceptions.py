"""
Infrastructure exceptions for Rankstream.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
store failures, stream failures, configuration errors and open circuit
breakers.

Design Notes
------------
- All infrastructure exceptions inherit from `RankstreamInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns.
- Retryable means "may succeed later"; the ingestion loop still never retries
  synchronously. Redelivery and the next event for the subject do that.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"  # Concerning but handled (e.g., poison records)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # Process cannot start or continue


class RankstreamInfrastructureException(Exception):
    """
    Base exception for all Rankstream infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise RankstreamInfrastructureException(
        ...     "Database connection failed",
        ...     {"host": "localhost", "port": 5432}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(RankstreamInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={
                "config_key": config_key,
                "message": message,
            },
            error_code="CONFIG_ERROR",
        )


class _OperationError(RankstreamInfrastructureException):
    """Shared shape for failures wrapping an underlying client exception."""

    DEFAULT_RETRYABLE = True
    _SUBSYSTEM = "Infrastructure"
    _CODE = "INFRA_ERROR"

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"{self._SUBSYSTEM} error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code=self._CODE,
        )


class DatabaseError(_OperationError):
    """
    Raised when a durable store operation fails.

    Many database errors are transient (connection loss, timeouts); the
    ingestion path logs them and moves on.
    """

    _SUBSYSTEM = "Database"
    _CODE = "DATABASE_ERROR"


class RankingStoreError(_OperationError):
    """Raised when a fast ranking store (Redis) operation fails."""

    _SUBSYSTEM = "Ranking store"
    _CODE = "RANKING_STORE_ERROR"


class StreamError(_OperationError):
    """Raised when fetching from or committing to the event stream fails."""

    _SUBSYSTEM = "Stream"
    _CODE = "STREAM_ERROR"


class CircuitBreakerError(RankstreamInfrastructureException):
    """
    Raised when a circuit breaker is open and blocking operations.

    Args:
        service: Name of the service with an open circuit breaker
        failure_count: Number of consecutive failures that opened the circuit
        retry_after: Seconds until circuit breaker can be retried
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, service: str, failure_count: int, retry_after: float) -> None:
        self.service = service
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker open for {service} "
            f"({failure_count} failures, retry after {retry_after:.1f}s)",
            details={
                "service": service,
                "failure_count": failure_count,
                "retry_after": retry_after,
            },
            error_code="CIRCUIT_BREAKER_OPEN",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """Return True if the exception represents a failure that may clear later."""
    if isinstance(exc, RankstreamInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Get the severity level of an exception for logging."""
    if isinstance(exc, RankstreamInfrastructureException):
        return exc.severity
    severity = getattr(exc, "severity", None)
    if isinstance(severity, ErrorSeverity):
        return severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """Determine if an exception should trigger alerting."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
