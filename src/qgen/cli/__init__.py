"""qgen CLI.

Typer application assembled from the command modules.

Package structure:
    cli/
    ├── __init__.py           # This file - app assembly and global options
    ├── helpers.py            # Output level, logging setup, config loading
    ├── output.py             # Rich formatting
    └── commands/
        ├── generate.py       # generate command (submit + feedback loop)
        ├── status.py         # status command
        ├── actions.py        # regenerate, finalize commands
        └── config_cmd.py     # config show, config path
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

import typer

from qgen import __version__

from . import helpers as helpers
from .commands import config_app, finalize, generate, regenerate, status
from .helpers import (
    OutputLevel,
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
    set_output_level,
)
from .output import console

app = typer.Typer(
    name="qgen",
    help="Generate and refine exam questions from course material",
    add_completion=False,
)


def _print_version(value: bool) -> None:
    if value:
        console.print(f"qgen v{__version__}")
        raise typer.Exit()


def _level_setter(level: OutputLevel) -> Callable[[bool], None]:
    def _apply(flag: bool) -> None:
        if flag:
            set_output_level(level)

    return _apply


def _store(setter: Callable[[Any], None]) -> Callable[[Any], Any]:
    """Option callback that records a non-empty value for configure_global_logging."""

    def _apply(value: Any) -> Any:
        if value:
            setter(value)
        return value

    return _apply


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_print_version,
        is_eager=True,
        help="Print the qgen version",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=_level_setter(OutputLevel.VERBOSE),
        is_eager=True,
        help="Show evaluations for every attempt",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        callback=_level_setter(OutputLevel.QUIET),
        is_eager=True,
        help="Only print errors and requested output",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=_store(set_log_level),
            help="Diagnostic log level: DEBUG, INFO, WARNING or ERROR",
            envvar="QGEN_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=_store(set_log_file),
            help="Write diagnostic logs to this file (rotated)",
            envvar="QGEN_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=_store(set_log_format),
            help="console (stderr), json (file or stdout) or both",
            envvar="QGEN_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """qgen - question generation client."""
    configure_global_logging(console)


app.command()(generate)
app.command()(status)
app.command()(regenerate)
app.command()(finalize)
app.add_typer(config_app)


__all__ = ["app", "main", "console", "OutputLevel"]
