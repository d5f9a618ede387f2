"""Status command for qgen CLI.

This module implements `qgen status <job-id>`: fetch a job once, or with
`--watch` keep following it until it settles (awaiting feedback, completed
or error).
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from qgen.core.config import QgenConfig
from qgen.core.exceptions import JobNotFoundError, QgenError, TransportError

from ..helpers import (
    ErrorMessages,
    create_controller,
    exit_with_error,
    is_quiet,
    job_to_json,
    load_cli_config,
)
from ..output import ProgressPrinter, console, print_job


def status(
    job_id: str = typer.Argument(..., help="Job ID to check status for"),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output status as JSON for machine parsing",
    ),
    watch: bool = typer.Option(
        False,
        "--watch",
        "-W",
        help="Keep polling until the job settles",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Seconds to watch before giving up (--watch only)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a qgen YAML config file",
    ),
) -> None:
    """Show the current state of a job.

    Examples:
        qgen status 3f2a9c
        qgen status 3f2a9c --json
        qgen status 3f2a9c --watch
    """
    config = load_cli_config(config_file, console)
    asyncio.run(_status_job(config, job_id, json_output, watch, timeout))


async def _status_job(
    config: QgenConfig,
    job_id: str,
    json_output: bool,
    watch: bool,
    timeout: float | None,
) -> None:
    controller = create_controller(config)
    try:
        if watch and not json_output and not is_quiet():
            controller.subscribe(ProgressPrinter(console))
        try:
            job = await controller.resume(job_id)
            if watch:
                job = await controller.wait_until_settled(timeout)
        except JobNotFoundError as e:
            exit_with_error(console, f"{ErrorMessages.JOB_NOT_FOUND}: {e.detail}", json_output=json_output)
        except TimeoutError:
            exit_with_error(console, ErrorMessages.TIMED_OUT, json_output=json_output, job=controller.job)
        except TransportError as e:
            exit_with_error(console, f"{ErrorMessages.SERVICE_UNREACHABLE}: {e}", json_output=json_output)
        except QgenError as e:
            exit_with_error(console, str(e), json_output=json_output)

        error = controller.errors.dismiss()
        if json_output:
            console.print(job_to_json(job, error), markup=False, highlight=False, soft_wrap=True)
        elif job is not None:
            print_job(job, error)
    finally:
        await controller.close()
