"""
Rankstream Logging Infrastructure

Exports the structured logging subsystem and the log context helpers.
"""

from src.core.logging.logger import (
    LogContext,
    LoggingHealth,
    LogSettings,
    get_logger,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LoggingHealth",
    "LogContext",
    "set_log_context",
    "LogSettings",
]
