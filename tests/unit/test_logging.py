"""
Unit tests for the logging subsystem: record context, JSON output, queue
overflow accounting and health reporting. setup_logging() is never called, so
the root logger is left as pytest configured it.
"""

import json
import logging
import queue
import sys

import pytest

from src.core.config.config import Config
from src.core.logging import logger as logging_module
from src.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    LogSettings,
    RankstreamQueueHandler,
    get_logging_health,
    set_log_context,
)


def _record(**attrs) -> logging.LogRecord:
    fields = {"name": "src.modules.leaderboard.pipeline", "msg": "applied", "levelname": "INFO"}
    fields.update(attrs)
    record = logging.makeLogRecord(fields)
    ContextFilter().filter(record)
    return record


class TestLogContext:
    def test_fields_attached_to_records(self):
        with LogContext(partition=3, offset=9, operation="process_record"):
            record = _record()

        assert record.partition == 3
        assert record.offset == 9
        assert record.operation == "process_record"
        assert len(record.correlation_id) == 8

    def test_explicit_extra_wins_over_context(self):
        with LogContext(subject_id="A", component="ingest"):
            record = _record(subject_id="B")

        assert record.subject_id == "B"
        assert record.component == "ingest"

    def test_component_defaults_to_top_level_logger_name(self):
        record = _record()

        assert record.component == "src"
        assert record.partition is None

    def test_nested_context_restores_outer(self):
        with LogContext(partition=1, correlation_id="outer"):
            with LogContext(offset=5):
                inner = _record()
            outer = _record()

        assert inner.partition == 1
        assert inner.offset == 5
        assert outer.offset is None
        assert outer.correlation_id == "outer"
        assert _record().correlation_id is None

    def test_set_log_context_undone_on_exit(self):
        with LogContext(partition=0):
            set_log_context(subject_id="A", offset=None)
            inside = _record()

        assert inside.subject_id == "A"
        assert inside.offset is None
        assert _record().subject_id is None

    async def test_async_context_manager(self):
        async with LogContext(operation="reconcile"):
            record = _record()

        assert record.operation == "reconcile"


class TestJSONFormatter:
    def test_context_and_extra_fields(self):
        with LogContext(partition=2, offset=11, correlation_id="abc"):
            record = _record(pipeline="ingest-0", status={"events_applied": 1})

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "applied"
        assert entry["level"] == "INFO"
        assert entry["partition"] == 2
        assert entry["correlation_id"] == "abc"
        assert "subject_id" not in entry
        assert entry["extra"] == {
            "pipeline": "ingest-0",
            "status": {"events_applied": 1},
        }

    def test_no_extra_object_without_custom_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert "extra" not in entry
        assert entry["component"] == "src"

    def test_exception_is_rendered(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert "ValueError: boom" in entry["exception"]


class TestQueueHandler:
    def test_full_queue_drops_and_counts(self):
        handler = RankstreamQueueHandler(queue.Queue(1))

        handler.enqueue(_record())
        handler.enqueue(_record())

        assert handler.enqueued == 1
        assert handler.dropped == 1


class TestLoggingHealth:
    def test_not_initialized(self, monkeypatch):
        monkeypatch.setattr(logging_module, "_queue_handler", None)
        monkeypatch.setattr(logging_module, "_queue_listener", None)

        health = get_logging_health()

        assert health.initialized is False
        assert health.records_dropped == 0

    def test_reports_queue_counters(self, monkeypatch):
        handler = RankstreamQueueHandler(queue.Queue(2))
        for _ in range(3):
            handler.enqueue(_record())
        monkeypatch.setattr(logging_module, "_queue_handler", handler)
        monkeypatch.setattr(logging_module, "_queue_listener", None)

        health = get_logging_health()

        assert health.queue_size == 2
        assert health.queue_max_size == 2
        assert health.records_enqueued == 2
        assert health.records_dropped == 1


class TestLogSettings:
    @pytest.mark.parametrize(
        "environment,log_json,expected",
        [
            ("production", None, True),
            ("development", None, False),
            ("development", True, True),
            ("production", False, False),
        ],
    )
    def test_json_output_follows_environment_unless_set(
        self, monkeypatch, environment, log_json, expected
    ):
        monkeypatch.setattr(Config, "ENVIRONMENT", environment)
        monkeypatch.setattr(Config, "LOG_JSON", log_json)

        settings = LogSettings.from_config()

        assert settings.use_json is expected
        if expected:
            assert settings.use_colors is False

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.setattr(Config, "LOG_LEVEL", "chatty")

        assert LogSettings.from_config().level == logging.INFO
