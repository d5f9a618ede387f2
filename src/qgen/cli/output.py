"""Rich output formatting for the qgen CLI.

Centralizes the colour scheme for job statuses and the renderers for the
job panel, evaluation metrics, context snippets and figure descriptions.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from qgen.jobs.figures import extract_figures
from qgen.jobs.models import (
    INTERACTIVE,
    ContextSnippet,
    Evaluation,
    FinalResult,
    Job,
    JobStatus,
)

# Command modules print through this console; quiet/JSON modes are handled
# by the is_quiet() guards in each command.
console = Console()

SNIPPET_PREVIEW_CHARS = 400


class StatusColors:
    """Colour per job status."""

    JOB_STATUS: dict[JobStatus, str] = {
        JobStatus.UPLOADING: "yellow",
        JobStatus.QUEUED: "yellow",
        JobStatus.PROCESSING_SETUP: "yellow",
        JobStatus.GENERATING_INITIAL_QUESTION: "yellow",
        JobStatus.REGENERATING_QUESTION: "yellow",
        JobStatus.FINALIZING: "yellow",
        JobStatus.AWAITING_FEEDBACK: "blue",
        JobStatus.MAX_ATTEMPTS_REACHED: "blue",
        JobStatus.COMPLETED: "green",
        JobStatus.ERROR: "red",
    }

    @classmethod
    def for_status(cls, status: JobStatus) -> str:
        return cls.JOB_STATUS.get(status, "white")


def format_status_label(status: JobStatus | None) -> str:
    """``awaiting_feedback`` -> ``AWAITING FEEDBACK``."""
    if status is None:
        return "INITIALIZING"
    return status.value.replace("_", " ").upper()


def format_status(status: JobStatus | None) -> str:
    """Status label wrapped in Rich colour markup."""
    if status is None:
        return "[dim]INITIALIZING[/dim]"
    color = StatusColors.for_status(status)
    return f"[{color}]{format_status_label(status)}[/{color}]"


def format_score(score: float | None) -> str:
    return f"{score:.4f}" if score is not None else "N/A"


def humanize_metric(name: str) -> str:
    """``difficulty_alignment`` -> ``Difficulty Alignment``."""
    return " ".join(word.capitalize() for word in name.split("_") if word)


def format_metric_value(value: object) -> str:
    if isinstance(value, bool):
        return "[green]PASS[/green]" if value else "[red]FAIL[/red]"
    if value is None:
        return "N/A"
    return escape(str(value))


def format_answerability(evaluation: Evaluation) -> str:
    answerability = evaluation.llm_answerability
    if answerability is None or answerability.is_answerable is None:
        return "N/A"
    if answerability.is_answerable:
        return "[green]ANSWERABLE[/green]"
    return "[red]NOT ANSWERABLE[/red]"


def create_evaluation_table(evaluation: Evaluation, title: str = "Evaluation") -> Table:
    """Two-column metric table for a question evaluation."""
    table = Table(title=title, show_header=False, title_justify="left")
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    if evaluation.status_message:
        table.add_row("Outcome", Text(evaluation.status_message))
    table.add_row("QSTS Score", format_score(evaluation.qsts_score))
    if evaluation.llm_answerability is not None:
        table.add_row("LLM Answerable", format_answerability(evaluation))
        table.add_row("Reasoning", Text(evaluation.llm_answerability.reasoning or "N/A"))
    for name, value in evaluation.metric_items():
        table.add_row(Text(humanize_metric(name)), format_metric_value(value))
    if evaluation.error_message:
        table.add_row("[yellow]LLM Generation Error[/yellow]", Text(evaluation.error_message))
    if evaluation.regeneration_error_message:
        table.add_row("[yellow]Regeneration Error[/yellow]", Text(evaluation.regeneration_error_message))
    if evaluation.qualitative_error:
        table.add_row("[yellow]Qualitative Eval Error[/yellow]", Text(evaluation.qualitative_error))
    return table


def create_snippet_table(snippets: Sequence[ContextSnippet], title: str) -> Table:
    """Table of context snippets with score, source and header trail."""
    table = Table(title=title, title_justify="left", show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Text")
    for index, snippet in enumerate(snippets, start=1):
        source = Text(snippet.metadata.source_file or "N/A")
        if snippet.metadata.header_trail:
            source.append("\n" + " -> ".join(snippet.metadata.header_trail), style="dim")
        text = snippet.source_text or "No text in snippet."
        if len(text) > SNIPPET_PREVIEW_CHARS:
            text = text[:SNIPPET_PREVIEW_CHARS].rstrip() + "..."
        table.add_row(str(index), format_score(snippet.score), source, Text(text))
    return table


def create_job_panel(job: Job, error: str | None = None) -> Panel:
    """Summary panel: id, document, status, message, attempts, question."""
    lines = [
        f"[bold]Job ID:[/bold] {escape(job.id or '-')}",
    ]
    if job.original_filename:
        lines.append(f"[bold]Document:[/bold] {escape(job.original_filename)}")
    lines.append(f"[bold]Status:[/bold] {format_status(job.status)}")
    lines.append(f"[bold]Message:[/bold] {escape(job.message or 'Waiting for updates...')}")
    if job.job_params and job.job_params.get("marks_for_question") is not None:
        lines.append(f"[bold]Marks:[/bold] {escape(str(job.job_params['marks_for_question']))}")
    if job.error_details:
        lines.append(f"[red][bold]Error Details:[/bold] {escape(job.error_details)}[/red]")
    if job.current_question:
        lines.append("")
        lines.append(
            f"[bold]Current Question (Attempt {job.regeneration_attempts_made}/"
            f"{job.max_regeneration_attempts}):[/bold]"
        )
        lines.append(escape(job.current_question))
    if job.status in INTERACTIVE:
        lines.append("")
        lines.append(f"[dim]Regenerations left: {job.attempts_remaining}[/dim]")
        if job.status == JobStatus.MAX_ATTEMPTS_REACHED:
            lines.append(
                "[yellow]Maximum regeneration attempts reached. You can only finalize "
                "the current question or start a new job.[/yellow]"
            )
    if error:
        lines.append("")
        lines.append(f"[red]{escape(error)}[/red]")
    return Panel(
        "\n".join(lines),
        title="Job Progress",
        border_style=StatusColors.for_status(job.status),
    )


def create_final_result_view(result: FinalResult, snippet_limit: int = 5) -> RenderableType:
    """Final question, its metrics, figures and top context snippets."""
    parts: list[RenderableType] = [
        Panel(Text(result.generated_question or "N/A"), title="Final Generated Question", border_style="green"),
    ]
    if result.evaluation_metrics is not None:
        parts.append(create_evaluation_table(result.evaluation_metrics, "Final Evaluation Metrics"))
    parts.append(Text(
        f"Total regeneration attempts for this result: {result.total_regeneration_attempts_made}"
    ))

    figures = extract_figures(result.generation_context_snippets)
    if figures:
        table = Table(title="Image Content Descriptions", title_justify="left", show_lines=True)
        table.add_column("Figure", style="bold")
        table.add_column("Original Ref", style="cyan")
        table.add_column("Description")
        for figure in figures:
            table.add_row(Text(figure.title), Text(figure.original_ref), Text(figure.description))
        parts.append(table)

    generation = result.top_generation_snippets(snippet_limit)
    if generation:
        parts.append(create_snippet_table(generation, f"Generation Context (Top {snippet_limit})"))
    else:
        parts.append(Text("No generation context snippets available.", style="dim"))
    answerability = result.top_answerability_snippets(snippet_limit)
    if answerability:
        parts.append(create_snippet_table(answerability, f"Answerability Context (Top {snippet_limit})"))
    return Group(*parts)


def print_job(job: Job, error: str | None = None, *, out: Console | None = None) -> None:
    """Print the job panel plus evaluation or final result, as appropriate."""
    out = out or console
    out.print(create_job_panel(job, error))
    if job.status == JobStatus.COMPLETED and job.final_result is not None:
        out.print(create_final_result_view(job.final_result))
    elif job.current_evaluations is not None:
        out.print(create_evaluation_table(job.current_evaluations, "Current Evaluation"))


class ProgressPrinter:
    """Session listener that prints one line per status or message change."""

    def __init__(self, out: Console | None = None) -> None:
        self._out = out or console
        self._last: tuple[JobStatus, str | None] | None = None

    def __call__(self, job: Job | None) -> None:
        if job is None:
            self._last = None
            return
        current = (job.status, job.message)
        if current == self._last:
            return
        self._last = current
        line = format_status(job.status)
        if job.message:
            line = f"{line} {escape(job.message)}"
        self._out.print(line)
