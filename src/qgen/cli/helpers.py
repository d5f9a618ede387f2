"""Shared utilities for qgen CLI commands.

This module contains helpers used across the command modules:
- Output level (quiet/normal/verbose) state
- Logging configuration from the global options
- Config loading with user-facing error reporting
- Controller construction and JSON rendering of a job
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal, NoReturn

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from qgen.core.config import QgenConfig, load_config
from qgen.core.logging import configure_logging, get_logger
from qgen.jobs.controller import InteractionController
from qgen.jobs.models import Job

_logger = get_logger("cli")

DEFAULT_CONFIG_FILE = Path("~/.qgen/config.yaml")


class ErrorMessages:
    """Constants for CLI error messages."""

    JOB_NOT_FOUND = "Job not found"
    CONFIG_LOAD_ERROR = "Error loading config"
    SERVICE_UNREACHABLE = "Could not reach the question generation service"
    TIMED_OUT = "Timed out waiting for the job"


# =============================================================================
# Output level management
# =============================================================================


class OutputLevel(str, Enum):
    """Output verbosity level."""

    QUIET = "quiet"  # Errors only
    NORMAL = "normal"
    VERBOSE = "verbose"  # Evaluations for every attempt, snippet tables


_output_level: OutputLevel = OutputLevel.NORMAL


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level == OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level == OutputLevel.QUIET


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """CLI logging options collected by the global callbacks."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt.lower()  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global options, once per process.

    Raises:
        typer.Exit: If the options are inconsistent.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


# =============================================================================
# Config and controller
# =============================================================================


def load_cli_config(config_file: Path | None, console: Console) -> QgenConfig:
    """Load config for a command, exiting with a readable error on failure.

    Without ``--config`` the default ``~/.qgen/config.yaml`` is used if it
    exists.
    """
    explicit = config_file is not None
    path = (config_file or DEFAULT_CONFIG_FILE).expanduser()
    if explicit and not path.exists():
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {path} does not exist")
        raise typer.Exit(1)
    try:
        return load_config(path if path.exists() else None)
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {escape(str(e))}")
        _logger.debug("cli.config_load_failed", path=str(path), error=str(e))
        raise typer.Exit(1) from None


def create_controller(config: QgenConfig) -> InteractionController:
    """Build the session controller used by every job command."""
    return InteractionController.from_config(config)


def job_to_json(job: Job | None, error: str | None = None) -> str:
    """Serialize a job (and the pending ephemeral error) for ``--json``."""
    payload: dict[str, object] = {
        "job": job.model_dump(mode="json") if job is not None else None,
        "error": error,
    }
    return json.dumps(payload, indent=2)


def exit_with_error(
    console: Console,
    message: str,
    *,
    json_output: bool = False,
    job: Job | None = None,
) -> NoReturn:
    """Report ``message`` (as text or JSON) and exit with status 1."""
    if json_output:
        console.print(job_to_json(job, message), markup=False, highlight=False, soft_wrap=True)
    else:
        console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


__all__ = [
    "CliLoggingConfig",
    "DEFAULT_CONFIG_FILE",
    "ErrorMessages",
    "OutputLevel",
    "configure_global_logging",
    "create_controller",
    "exit_with_error",
    "is_quiet",
    "is_verbose",
    "job_to_json",
    "load_cli_config",
    "set_log_file",
    "set_log_format",
    "set_log_level",
    "set_output_level",
]
