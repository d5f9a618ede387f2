"""Structured logging infrastructure for qgen.

Provides structured logging using structlog with job-aware context such as
job_id and session_id. Supports console output on stderr, JSON output, and
a rotating log file.

Example usage:
    from qgen.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("poller")

    # Log with auto-context
    logger.info("poller.started", interval=5.0)

    # Correlate everything logged while a job is being followed
    ctx = JobContext(job_id="abc123")
    with with_context(ctx):
        logger.info("session.merged")  # Includes job_id, session_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Field names whose values are never written to a log
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
})

LogFormat = Literal["json", "console", "both"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class JobContext:
    """Immutable correlation context for log entries of one session.

    Attributes:
        job_id: Remote job identifier, None before the server assigned one.
        session_id: Unique id of the local session (one per controller).
        component: Component name for the current operation.
    """

    job_id: str | None = None
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    component: str = "unknown"

    def with_job(self, job_id: str | None) -> JobContext:
        """Return a copy of this context bound to another job id."""
        return JobContext(job_id=job_id, session_id=self.session_id, component=self.component)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging (None values dropped)."""
        result: dict[str, Any] = {"session_id": self.session_id}
        if self.job_id is not None:
            result["job_id"] = self.job_id
        return result


_current_context: ContextVar[JobContext | None] = ContextVar(
    "qgen_context", default=None
)


def get_current_context() -> JobContext | None:
    """Get the current JobContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: JobContext) -> Iterator[JobContext]:
    """Set ``ctx`` as the logging context for the duration of a block.

    The context is stored in a ContextVar, so tasks created inside the block
    (the poller's loop, for instance) inherit it.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    """Return ``"[REDACTED]"`` for values stored under a sensitive key."""
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds JobContext fields to log entries.

    Explicitly bound fields take precedence over the context.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


class QgenLogger:
    """Component logger on top of structlog.

    Looks the structlog logger up on every call, so module-level loggers
    follow a later ``configure_logging()``.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self.component = component
        self.context: dict[str, Any] = {"component": component, **initial_context}

    def bind(self, **context: Any) -> QgenLogger:
        """Return a logger carrying ``context`` in addition to this one's."""
        extra = {k: v for k, v in self.context.items() if k != "component"}
        return QgenLogger(self.component, **{**extra, **context})

    def _emit(self, method: str, event: str, kw: dict[str, Any]) -> None:
        bound = structlog.get_logger().bind(**self.context)
        getattr(bound, method)(event, **kw)

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Like ``error`` plus the active traceback; use inside ``except``."""
        self._emit("exception", event, kw)


def _shared_processors(include_timestamps: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
        _add_context,
    ]
    if include_timestamps:
        chain.append(_add_timestamp)
    return chain + [
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _make_handlers(
    format: LogFormat,  # noqa: A002
    file_path: Path | None,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    """stderr for console output; the file (or stdout) for JSON lines."""
    made: list[logging.Handler] = []
    if format != "json":
        made.append(logging.StreamHandler(sys.stderr))
    if format == "console":
        return made
    if file_path is None:
        made.append(logging.StreamHandler(sys.stdout))
        return made
    file_path.parent.mkdir(parents=True, exist_ok=True)
    made.append(RotatingFileHandler(
        file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    ))
    return made


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
) -> None:
    """Configure qgen structured logging.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable stderr output, "json" for
            JSON lines (to ``file_path`` or stdout), "both" for console on
            stderr plus JSON to ``file_path``.
        file_path: Log file path. Required when format="both".
        max_file_size_mb: Size at which the log file is rotated.
        backup_count: Number of rotated files kept.
        include_timestamps: Add ISO8601 UTC timestamps to entries.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    numeric_level = logging.getLevelName(level)
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in _make_handlers(format, file_path, max_file_size_mb * 1024 * 1024, backup_count):
        handler.setLevel(numeric_level)
        root.addHandler(handler)
    root.setLevel(numeric_level)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # Not cached: module-level loggers must pick up a reconfiguration
    structlog.configure(
        processors=[*_shared_processors(include_timestamps), renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> QgenLogger:
    """Get a qgen logger for a component (e.g. "poller", "api.client")."""
    return QgenLogger(component, **initial_context)


__all__ = [
    "JobContext",
    "QgenLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
