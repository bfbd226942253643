"""
Rankstream Logging Subsystem

Purpose
-------
Structured, non-blocking logging for the ingestion workers and the rank
reconciler:

- JSON lines for aggregation, colored or plain text for local runs.
- Per-record context (subject, partition, offset, correlation id) carried in a
  ContextVar, so each worker task logs its own record.
- A bounded QueueHandler in front of a QueueListener thread; console and file
  I/O never run on the event loop, and an overflowing queue drops records
  instead of stalling ingestion.

Design Decisions
----------------
- Context is attached by ContextFilter on the producing task, before the record
  is queued. Fields passed via ``extra=`` win over the context.
- Every non-standard LogRecord attribute ends up in the JSON ``extra`` object.
- setup_logging() is called by the process entrypoint, not on import.

Dependencies
------------
- src.core.config.config.Config
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from src.core.config.config import Config

CONTEXT_FIELDS = (
    "subject_id",
    "partition",
    "offset",
    "component",
    "operation",
    "correlation_id",
)

_record_context: ContextVar[Dict[str, Any]] = ContextVar("record_context", default={})


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LogSettings:
    """Logging options resolved from Config when logging starts."""

    level: int
    use_json: bool
    use_colors: bool
    logs_dir: Path
    environment: str

    CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
    FILE_NAME = "rankstream_daily.json.log"
    FILE_BACKUP_COUNT = 1
    QUEUE_MAX_SIZE = 10_000

    @classmethod
    def from_config(cls) -> "LogSettings":
        production = Config.is_production()
        use_json = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        return cls(
            level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
            use_json=use_json,
            use_colors=(
                not production
                and not use_json
                and Config.LOG_COLORS
                and sys.stdout.isatty()
            ),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
            environment=Config.ENVIRONMENT,
        )


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    handler_errors: int


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the current record context onto each LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _record_context.get()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field))
        if record.component is None:
            record.component = record.name.split(".", 1)[0]
        return True


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS: Dict[int, str] = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per line: core fields, record context, then ``extra``."""

    RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {
        "message",
        "asctime",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RESERVED
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)


# ============================================================================
# Queue Handler & Listener
# ============================================================================


class RankstreamQueueHandler(QueueHandler):
    """Non-blocking enqueue that counts and drops records when the queue is full."""

    def __init__(self, log_queue: "queue.Queue[logging.LogRecord]") -> None:
        super().__init__(log_queue)
        self.enqueued = 0
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
            self.enqueued += 1
        except queue.Full:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 1000 == 0:
                sys.stderr.write(
                    f"Rankstream logging queue full; {self.dropped} records dropped.\n"
                )


class RankstreamQueueListener(QueueListener):
    def __init__(
        self, log_queue: "queue.Queue[logging.LogRecord]", *handlers: logging.Handler
    ) -> None:
        super().__init__(log_queue, *handlers, respect_handler_level=True)
        self.errors = 0

    def handle(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            super().handle(record)
        except Exception as exc:
            self.errors += 1
            sys.stderr.write(f"Rankstream log handler failed: {exc!r}\n")


# ============================================================================
# Global Setup
# ============================================================================

_queue_handler: Optional[RankstreamQueueHandler] = None
_queue_listener: Optional[RankstreamQueueListener] = None


def _build_handlers(settings: LogSettings, file_output: bool) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if settings.use_json:
        console.setFormatter(JSONFormatter())
    else:
        formatter_class = ColoredFormatter if settings.use_colors else logging.Formatter
        console.setFormatter(
            formatter_class(fmt=settings.CONSOLE_FORMAT, datefmt=settings.DATE_FORMAT)
        )
    handlers: list[logging.Handler] = [console]

    if file_output:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(settings.logs_dir / settings.FILE_NAME),
            when="midnight",
            backupCount=settings.FILE_BACKUP_COUNT,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        handlers.append(daily)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


def setup_logging(*, file_output: bool = True) -> None:
    """Route the root logger through a bounded queue. Idempotent."""
    global _queue_handler, _queue_listener

    if _queue_listener is not None:
        return

    settings = LogSettings.from_config()
    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(settings.QUEUE_MAX_SIZE)

    _queue_listener = RankstreamQueueListener(log_queue, *_build_handlers(settings, file_output))
    _queue_listener.start()

    _queue_handler = RankstreamQueueHandler(log_queue)
    _queue_handler.setLevel(settings.level)
    _queue_handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(settings.level)
    root.handlers.clear()
    root.addHandler(_queue_handler)

    for noisy in ("aiokafka", "asyncio", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": logging.getLevelName(settings.level),
            "json": settings.use_json,
            "colors": settings.use_colors,
            "logs_dir": str(settings.logs_dir) if file_output else None,
        },
    )


def shutdown_logging() -> None:
    """Drain the queue, close every handler and detach from the root logger."""
    global _queue_handler, _queue_listener

    if _queue_listener is None:
        return

    logging.getLogger(__name__).info("Shutting down logging subsystem")

    listener, _queue_listener = _queue_listener, None
    listener.stop()
    for handler in listener.handlers:
        handler.flush()
        handler.close()

    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler = None


def get_logging_health() -> LoggingHealth:
    if _queue_handler is None:
        return LoggingHealth(
            initialized=False,
            queue_size=0,
            queue_max_size=0,
            records_enqueued=0,
            records_dropped=0,
            handler_errors=0,
        )

    return LoggingHealth(
        initialized=_queue_listener is not None,
        queue_size=_queue_handler.queue.qsize(),
        queue_max_size=_queue_handler.queue.maxsize,
        records_enqueued=_queue_handler.enqueued,
        records_dropped=_queue_handler.dropped,
        handler_errors=_queue_listener.errors if _queue_listener is not None else 0,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def _merge_fields(base: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
    merged = dict(base)
    merged.update((key, value) for key, value in fields.items() if value is not None)
    return merged


class LogContext:
    """
    Bind record-level fields to every log line emitted inside the block.

    Nested blocks inherit the outer fields; the outer context is restored on
    exit. A fresh correlation id is generated unless one is passed.

    >>> with LogContext(partition=0, offset=42, operation="process_record"):
    ...     logger.info("applied")
    """

    def __init__(self, correlation_id: Optional[str] = None, **fields: Any) -> None:
        self.context = _merge_fields(
            _record_context.get(),
            correlation_id=correlation_id or uuid.uuid4().hex[:8],
            **fields,
        )
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _record_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _record_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Add fields to the current context; the enclosing LogContext undoes it."""
    _record_context.set(_merge_fields(_record_context.get(), **fields))
