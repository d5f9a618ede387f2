"""Tests for qgen.core.logging module."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import pytest
import structlog

from qgen.core.logging import (
    SENSITIVE_PATTERNS,
    JobContext,
    QgenLogger,
    _add_context,
    _sanitize_event_dict,
    _sanitize_value,
    configure_logging,
    get_current_context,
    get_logger,
    with_context,
)


class TestSensitivePatterns:
    """Tests for sensitive field detection and sanitization."""

    def test_known_sensitive_patterns(self) -> None:
        assert "api_key" in SENSITIVE_PATTERNS
        assert "token" in SENSITIVE_PATTERNS
        assert "authorization" in SENSITIVE_PATTERNS

    def test_sanitize_value_redacts_mixed_case_and_compound_keys(self) -> None:
        assert _sanitize_value("API_KEY", "sk-12345") == "[REDACTED]"
        assert _sanitize_value("bearer_token", "abc123") == "[REDACTED]"
        assert _sanitize_value("db_password", "hunter2") == "[REDACTED]"

    def test_sanitize_value_preserves_safe_values(self) -> None:
        assert _sanitize_value("job_id", "abc123") == "abc123"
        assert _sanitize_value("attempts", 2) == 2

    def test_sanitize_event_dict_one_level_deep(self) -> None:
        event_dict = {
            "event": "client.request",
            "headers": {"Authorization": "Bearer x", "Accept": "application/json"},
            "api_key": "sk-secret",
            "job_id": "abc123",
        }
        result = _sanitize_event_dict(None, "info", event_dict)
        assert result["api_key"] == "[REDACTED]"
        assert result["headers"] == {"Authorization": "[REDACTED]", "Accept": "application/json"}
        assert result["job_id"] == "abc123"
        assert result["event"] == "client.request"


class TestJobContext:
    def test_to_dict_drops_missing_job_id(self) -> None:
        ctx = JobContext(session_id="s1")
        assert ctx.to_dict() == {"session_id": "s1"}

    def test_with_job_keeps_session(self) -> None:
        ctx = JobContext(session_id="s1", component="session")
        bound = ctx.with_job("abc123")
        assert bound.job_id == "abc123"
        assert bound.session_id == "s1"
        assert bound.component == "session"
        assert ctx.job_id is None

    def test_session_ids_are_unique(self) -> None:
        assert JobContext().session_id != JobContext().session_id

    def test_with_context_sets_and_restores(self) -> None:
        assert get_current_context() is None
        ctx = JobContext(job_id="abc123")
        with with_context(ctx) as active:
            assert active is ctx
            assert get_current_context() is ctx
        assert get_current_context() is None

    @pytest.mark.asyncio
    async def test_tasks_inherit_context(self) -> None:
        ctx = JobContext(job_id="abc123")

        async def read() -> JobContext | None:
            return get_current_context()

        with with_context(ctx):
            task = asyncio.create_task(read())
        assert await task is ctx

    def test_add_context_processor(self) -> None:
        with with_context(JobContext(job_id="abc123", session_id="s1")):
            result = _add_context(None, "info", {"event": "poller.fetched"})
            explicit = _add_context(None, "info", {"event": "x", "job_id": "other"})
        assert result["job_id"] == "abc123"
        assert result["session_id"] == "s1"
        assert explicit["job_id"] == "other"

    def test_add_context_without_context(self) -> None:
        assert _add_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestQgenLogger:
    def test_get_logger_returns_component_logger(self) -> None:
        logger = get_logger("poller")
        assert isinstance(logger, QgenLogger)
        assert logger.context == {"component": "poller"}

    def test_bind_creates_new_logger(self) -> None:
        logger = get_logger("api.client", base_url="http://qgen.test")
        bound = logger.bind(job_id="abc123")
        assert bound is not logger
        assert bound.context == {
            "component": "api.client",
            "base_url": "http://qgen.test",
            "job_id": "abc123",
        }
        assert "job_id" not in logger.context


class TestConfigureLogging:
    def test_both_requires_file(self) -> None:
        with pytest.raises(ValueError, match="file_path is required"):
            configure_logging(format="both")

    def test_console_handler_on_stderr(self) -> None:
        configure_logging(level="DEBUG", format="console")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_json_to_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "qgen.log"
        configure_logging(level="INFO", format="json", file_path=log_file)

        with with_context(JobContext(job_id="abc123", session_id="s1")):
            get_logger("poller").info("poller.fetched", status="queued", token="t-1")
            get_logger("poller").debug("poller.noise")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "poller.fetched"
        assert entry["component"] == "poller"
        assert entry["job_id"] == "abc123"
        assert entry["session_id"] == "s1"
        assert entry["token"] == "[REDACTED]"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_without_timestamps(self, tmp_path: Path) -> None:
        log_file = tmp_path / "qgen.log"
        configure_logging(format="json", file_path=log_file, include_timestamps=False)
        get_logger("cli").warning("cli.test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        entry = json.loads(log_file.read_text().splitlines()[0])
        assert "timestamp" not in entry

    def test_reconfigure_replaces_handlers(self, tmp_path: Path) -> None:
        configure_logging(format="both", file_path=tmp_path / "a.log")
        assert len(logging.getLogger().handlers) == 2
        configure_logging(format="console")
        assert len(logging.getLogger().handlers) == 1
        assert structlog.is_configured()
