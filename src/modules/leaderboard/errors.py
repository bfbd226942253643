"""
Domain exceptions for the leaderboard pipeline.

- `PoisonRecordError`: a stream record that can never become a valid score
  event. Permanent; the record is acknowledged and dropped.
- `ReconciliationScanError`: the durable store could not be read in full, so
  a reconciliation pass wrote nothing and was aborted.

Both carry the same structured metadata as the infrastructure exceptions so
the ingestion loop and the scheduler can log them uniformly.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.core.exceptions import ErrorSeverity


class LeaderboardError(Exception):
    """
    Base exception for leaderboard domain errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
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


class PoisonRecordError(LeaderboardError):
    """
    Raised when a stream record cannot be decoded into a ScoreEvent.

    Args:
        reason: What is wrong with the payload
        field: The offending field, or None for payload-level problems
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, reason: str, field: Optional[str] = None) -> None:
        self.reason = reason
        self.field = field
        message = f"Invalid score event: {reason}"
        if field is not None:
            message = f"Invalid score event field '{field}': {reason}"
        super().__init__(
            message,
            details={"reason": reason, "field": field},
            error_code="POISON_RECORD",
        )


class ReconciliationScanError(LeaderboardError):
    """Raised when the ordered scan of the durable store fails."""

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(
            f"Reconciliation scan failed: {original_error}",
            details={
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="RECONCILE_SCAN_FAILED",
        )
