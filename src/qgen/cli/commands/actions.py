"""Feedback-loop commands for qgen CLI.

This module implements the one-shot versions of the interactive loop, for
jobs submitted earlier (or from another terminal):
- `qgen regenerate <job-id> <feedback>` - regenerate with feedback
- `qgen finalize <job-id>` - accept the current question

Both attach to the job, wait for it to be ready for feedback, apply the
action and wait for the service to finish.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from qgen.core.config import QgenConfig
from qgen.core.exceptions import JobNotFoundError, QgenError, TransportError
from qgen.jobs.models import JobAction, JobStatus

from ..helpers import (
    ErrorMessages,
    create_controller,
    exit_with_error,
    is_quiet,
    job_to_json,
    load_cli_config,
)
from ..output import ProgressPrinter, console, print_job

_CONFIG_OPTION_HELP = "Path to a qgen YAML config file"


def regenerate(
    job_id: str = typer.Argument(..., help="Job ID to regenerate the question for"),
    feedback: str = typer.Argument(..., help="What to change about the current question"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Print the job as JSON"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for the service"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help=_CONFIG_OPTION_HELP),
) -> None:
    """Regenerate a job's question using feedback.

    Examples:
        qgen regenerate 3f2a9c "Focus on Dijkstra instead of BFS"
    """
    config = load_cli_config(config_file, console)
    asyncio.run(_run_action(
        config,
        job_id,
        JobAction.REGENERATE,
        feedback=feedback,
        json_output=json_output,
        question_only=False,
        timeout=timeout,
    ))


def finalize(
    job_id: str = typer.Argument(..., help="Job ID whose current question to finalize"),
    question_only: bool = typer.Option(
        False,
        "--question",
        help="Print only the finalized question text",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Print the job as JSON"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for the service"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help=_CONFIG_OPTION_HELP),
) -> None:
    """Finalize a job's current question.

    Examples:
        qgen finalize 3f2a9c
        qgen finalize 3f2a9c --question > question.txt
    """
    config = load_cli_config(config_file, console)
    asyncio.run(_run_action(
        config,
        job_id,
        JobAction.FINALIZE,
        feedback="",
        json_output=json_output,
        question_only=question_only,
        timeout=timeout,
    ))


async def _run_action(
    config: QgenConfig,
    job_id: str,
    action: JobAction,
    *,
    feedback: str,
    json_output: bool,
    question_only: bool,
    timeout: float | None,
) -> None:
    controller = create_controller(config)
    quiet = json_output or question_only or is_quiet()
    if not quiet:
        controller.subscribe(ProgressPrinter(console))
    try:
        try:
            await controller.resume(job_id)
            await controller.wait_until_settled(timeout)
            if action == JobAction.REGENERATE:
                await controller.regenerate(feedback)
            else:
                await controller.finalize()
            job = await controller.wait_until_settled(timeout)
        except JobNotFoundError as e:
            exit_with_error(console, f"{ErrorMessages.JOB_NOT_FOUND}: {e.detail}", json_output=json_output)
        except TimeoutError:
            exit_with_error(console, ErrorMessages.TIMED_OUT, json_output=json_output, job=controller.job)
        except TransportError as e:
            exit_with_error(console, f"{ErrorMessages.SERVICE_UNREACHABLE}: {e}", json_output=json_output)
        except QgenError as e:
            exit_with_error(console, str(e), json_output=json_output, job=controller.job)

        error = controller.errors.dismiss()
        if json_output:
            console.print(job_to_json(job, error), markup=False, highlight=False, soft_wrap=True)
        elif question_only:
            if job is not None and job.final_result is not None:
                console.print(job.final_result.generated_question, markup=False, highlight=False, soft_wrap=True)
        elif job is not None and not is_quiet():
            print_job(job, error)

        if job is None or job.status == JobStatus.ERROR:
            raise typer.Exit(1)
    finally:
        await controller.close()
