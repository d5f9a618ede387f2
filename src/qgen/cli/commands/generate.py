"""Generate command for qgen CLI.

This module implements `qgen generate <pdf>`: upload a document, follow the
job until the first question is ready, then run the feedback loop.

The loop is interactive by default (type feedback to regenerate, `f` to
finalize, `q` to stop). Passing `--feedback` and/or `--finalize` makes it
scripted: each feedback string is applied in order, then the question is
finalized if requested.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.markup import escape

from qgen.api.types import SourceDocument
from qgen.core.config import GenerationParams, QgenConfig
from qgen.core.exceptions import (
    ActionFailedError,
    JobValidationError,
    QgenError,
    SubmissionError,
)
from qgen.core.logging import get_logger
from qgen.jobs.controller import InteractionController
from qgen.jobs.models import Job, JobStatus

from ..helpers import (
    ErrorMessages,
    create_controller,
    exit_with_error,
    is_quiet,
    is_verbose,
    job_to_json,
    load_cli_config,
)
from ..output import ProgressPrinter, console, create_evaluation_table, print_job

_logger = get_logger("cli.generate")

FINALIZE_ANSWERS = {"f", "finalize"}
QUIT_ANSWERS = {"q", "quit"}


def generate(
    pdf: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="PDF document to generate a question from",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a qgen YAML config file",
    ),
    academic_level: str | None = typer.Option(None, "--academic-level", help="e.g. Undergraduate"),
    major: str | None = typer.Option(None, "--major", help="e.g. Computer Science"),
    course_name: str | None = typer.Option(None, "--course", help="Course name"),
    taxonomy_level: str | None = typer.Option(
        None,
        "--taxonomy",
        "-t",
        help="Bloom's taxonomy level (Remember .. Create)",
    ),
    marks: int | None = typer.Option(None, "--marks", "-m", help="Marks for the question (5, 10, 15, 20)"),
    topics: str | None = typer.Option(None, "--topics", help="Comma-separated key topics"),
    retrieval_limit: int | None = typer.Option(
        None,
        "--retrieval-limit",
        help="Number of context snippets retrieved for generation",
    ),
    similarity_threshold: float | None = typer.Option(
        None,
        "--similarity-threshold",
        help="Minimum similarity for retrieved snippets (0-1)",
    ),
    diagrams: bool | None = typer.Option(
        None,
        "--diagrams/--no-diagrams",
        help="Ask the service to generate diagrams",
    ),
    feedback: list[str] | None = typer.Option(
        None,
        "--feedback",
        "-f",
        help="Feedback for one regeneration (repeatable; disables the prompt loop)",
    ),
    finalize: bool | None = typer.Option(
        None,
        "--finalize/--no-finalize",
        help="Finalize after the scripted feedback (disables the prompt loop)",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each processing step before giving up",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Print the final job as JSON",
    ),
) -> None:
    """Generate an exam question from a PDF.

    Examples:
        qgen generate notes.pdf
        qgen generate notes.pdf --taxonomy Apply --marks 5
        qgen generate notes.pdf -f "Make it harder" --finalize --json
    """
    config = load_cli_config(config_file, console)
    overrides: dict[str, Any] = {
        "academic_level": academic_level,
        "major": major,
        "course_name": course_name,
        "taxonomy_level": taxonomy_level,
        "marks_for_question": marks,
        "topics_list": topics,
        "retrieval_limit_generation": retrieval_limit,
        "similarity_threshold_generation": similarity_threshold,
        "generate_diagrams": diagrams,
    }
    try:
        params = build_params(config.generation, overrides)
    except ValidationError as e:
        exit_with_error(console, f"Invalid generation parameters: {e}", json_output=json_output)

    scripted = bool(feedback) or finalize is not None
    asyncio.run(_generate(
        config,
        params,
        pdf,
        feedback=list(feedback or []),
        finalize=bool(finalize),
        interactive=not scripted and not json_output,
        timeout=timeout,
        json_output=json_output,
    ))


def build_params(base: GenerationParams, overrides: dict[str, Any]) -> GenerationParams:
    """Apply the non-None CLI overrides on top of the configured defaults.

    Raises:
        ValidationError: An override is out of range.
    """
    data = base.model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    return GenerationParams.model_validate(data)


async def _generate(
    config: QgenConfig,
    params: GenerationParams,
    pdf: Path,
    *,
    feedback: list[str],
    finalize: bool,
    interactive: bool,
    timeout: float | None,
    json_output: bool,
) -> None:
    document = SourceDocument.from_path(pdf)
    controller = create_controller(config)
    unsubscribe = None
    if not json_output and not is_quiet():
        unsubscribe = controller.subscribe(ProgressPrinter(console))

    try:
        try:
            job_id = await controller.submit(params, document)
            _logger.info("cli.job_submitted", job_id=job_id, filename=document.filename)
            job = await controller.wait_until_settled(timeout)
        except SubmissionError as e:
            exit_with_error(console, f"Submission failed: {e}", json_output=json_output, job=controller.job)
        except TimeoutError:
            exit_with_error(console, ErrorMessages.TIMED_OUT, json_output=json_output, job=controller.job)

        if job is not None and job.is_interactive:
            if interactive:
                job = await _prompt_loop(controller, timeout)
            else:
                job = await _scripted_loop(controller, feedback, finalize, timeout, json_output)

        _report(job, controller.errors.dismiss(), json_output)
    except QgenError as e:
        exit_with_error(console, str(e), json_output=json_output, job=controller.job)
    finally:
        if unsubscribe is not None:
            unsubscribe()
        await controller.close()


async def _apply_and_wait(
    controller: InteractionController,
    action: str,
    text: str,
    timeout: float | None,
) -> Job | None:
    if action == "finalize":
        await controller.finalize()
    else:
        await controller.regenerate(text)
    try:
        return await controller.wait_until_settled(timeout)
    except TimeoutError:
        raise ActionFailedError(ErrorMessages.TIMED_OUT) from None


async def _scripted_loop(
    controller: InteractionController,
    feedback: list[str],
    finalize: bool,
    timeout: float | None,
    json_output: bool,
) -> Job | None:
    job = controller.job
    for text in feedback:
        if job is None or not job.can_regenerate:
            _logger.info("cli.feedback_skipped", remaining=len(feedback))
            break
        job = await _apply_and_wait(controller, "regenerate", text, timeout)
        if is_verbose() and not json_output and job is not None and job.current_evaluations is not None:
            console.print(create_evaluation_table(job.current_evaluations, "Current Evaluation"))
    if finalize and job is not None and job.is_interactive:
        job = await _apply_and_wait(controller, "finalize", "", timeout)
    return job


async def _prompt_loop(controller: InteractionController, timeout: float | None) -> Job | None:
    job = controller.job
    while job is not None and job.is_interactive:
        print_job(job, controller.errors.dismiss())
        answer = typer.prompt(
            "Feedback to regenerate (f = finalize, q = quit)",
            default="",
            show_default=False,
        ).strip()
        if answer.lower() in QUIT_ANSWERS:
            break
        action = "finalize" if answer.lower() in FINALIZE_ANSWERS else "regenerate"
        try:
            job = await _apply_and_wait(controller, action, answer, timeout)
        except (JobValidationError, ActionFailedError) as e:
            _logger.debug("cli.action_not_applied", action=action, error=str(e))
            controller.errors.set(str(e))
            job = controller.job
    return job


def _report(job: Job | None, error: str | None, json_output: bool) -> None:
    if json_output:
        console.print(job_to_json(job, error), markup=False, highlight=False, soft_wrap=True)
    elif job is not None and not is_quiet():
        print_job(job, error)
    elif error:
        console.print(f"[red]Error:[/red] {escape(error)}")

    if job is None or job.status == JobStatus.ERROR or (error and not job.is_terminal):
        raise typer.Exit(1)
