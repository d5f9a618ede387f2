"""Job record, wire snapshot and status state machine.

The service reports job state as sparse JSON snapshots; ``JobSnapshot``
keeps track of which keys a snapshot actually carried so the reducer can
tell an explicit ``null`` apart from an omitted field. ``Job`` is the
authoritative local record built from those snapshots.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

ERROR_SENTINEL_PREFIX = "Error:"


class JobStatus(str, Enum):
    """Status of a question generation job (wire values)."""

    UPLOADING = "uploading"
    QUEUED = "queued"
    PROCESSING_SETUP = "processing_setup"
    GENERATING_INITIAL_QUESTION = "generating_initial_question"
    REGENERATING_QUESTION = "regenerating_question"
    FINALIZING = "finalizing"
    AWAITING_FEEDBACK = "awaiting_feedback"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    COMPLETED = "completed"
    ERROR = "error"


class JobAction(str, Enum):
    """Local actions a session can take on a job."""

    SUBMIT = "submit"
    REGENERATE = "regenerate"
    FINALIZE = "finalize"


# Statuses that stop the polling loop and release the busy flag
TERMINAL_FOR_POLLING: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.ERROR,
    JobStatus.AWAITING_FEEDBACK,
    JobStatus.MAX_ATTEMPTS_REACHED,
})

# Statuses in which the user may regenerate or finalize
INTERACTIVE: frozenset[JobStatus] = frozenset({
    JobStatus.AWAITING_FEEDBACK,
    JobStatus.MAX_ATTEMPTS_REACHED,
})

TERMINAL: frozenset[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.ERROR})

_S = JobStatus

# Allowed next statuses for each status. Staying in the same status is always
# allowed (repeated polls) and is not listed.
STATUS_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    _S.UPLOADING: frozenset({_S.QUEUED, _S.ERROR}),
    _S.QUEUED: frozenset({
        _S.PROCESSING_SETUP, _S.GENERATING_INITIAL_QUESTION,
        _S.AWAITING_FEEDBACK, _S.MAX_ATTEMPTS_REACHED, _S.ERROR,
    }),
    _S.PROCESSING_SETUP: frozenset({
        _S.GENERATING_INITIAL_QUESTION, _S.AWAITING_FEEDBACK,
        _S.MAX_ATTEMPTS_REACHED, _S.ERROR,
    }),
    _S.GENERATING_INITIAL_QUESTION: frozenset({
        _S.AWAITING_FEEDBACK, _S.MAX_ATTEMPTS_REACHED, _S.ERROR,
    }),
    _S.AWAITING_FEEDBACK: frozenset({
        _S.REGENERATING_QUESTION, _S.FINALIZING, _S.ERROR,
    }),
    _S.REGENERATING_QUESTION: frozenset({
        _S.AWAITING_FEEDBACK, _S.MAX_ATTEMPTS_REACHED, _S.ERROR,
    }),
    _S.MAX_ATTEMPTS_REACHED: frozenset({
        _S.REGENERATING_QUESTION, _S.FINALIZING, _S.AWAITING_FEEDBACK, _S.ERROR,
    }),
    _S.FINALIZING: frozenset({
        _S.COMPLETED, _S.AWAITING_FEEDBACK, _S.MAX_ATTEMPTS_REACHED, _S.ERROR,
    }),
    _S.COMPLETED: frozenset(),
    _S.ERROR: frozenset(),
}

# (status, action) -> statuses the local action may move the job into.
# Missing keys mean the action is not allowed in that status.
ACTION_TRANSITIONS: dict[tuple[JobStatus, JobAction], frozenset[JobStatus]] = {
    (_S.AWAITING_FEEDBACK, JobAction.REGENERATE): frozenset({_S.REGENERATING_QUESTION}),
    (_S.MAX_ATTEMPTS_REACHED, JobAction.REGENERATE): frozenset({_S.REGENERATING_QUESTION}),
    (_S.AWAITING_FEEDBACK, JobAction.FINALIZE): frozenset({_S.FINALIZING}),
    (_S.MAX_ATTEMPTS_REACHED, JobAction.FINALIZE): frozenset({_S.FINALIZING}),
}


def is_valid_transition(current: JobStatus, new: JobStatus) -> bool:
    """Whether the server moving ``current`` to ``new`` is expected."""
    return current == new or new in STATUS_TRANSITIONS[current]


def allowed_action_targets(status: JobStatus, action: JobAction) -> frozenset[JobStatus]:
    """Statuses ``action`` may lead to from ``status``; empty if not allowed."""
    return ACTION_TRANSITIONS.get((status, action), frozenset())


class LlmAnswerability(BaseModel):
    """LLM judgement of whether the question is answerable from the context."""

    model_config = ConfigDict(frozen=True)

    is_answerable: bool | None = None
    reasoning: str = ""

    @model_validator(mode="before")
    @classmethod
    def _none_reasoning(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("reasoning") is None:
            data = {**data, "reasoning": ""}
        return data


class Evaluation(BaseModel):
    """Metrics attached to a generated question."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    qsts_score: float | None = None
    llm_answerability: LlmAnswerability | None = None
    qualitative_metrics: dict[str, bool | str | int | float | None] = Field(default_factory=dict)
    status_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("generation_status_message", "status_message"),
    )
    error_message: str | None = None
    regeneration_error_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("error_message_regeneration", "regeneration_error_message"),
    )

    @model_validator(mode="before")
    @classmethod
    def _none_metrics(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("qualitative_metrics") is None:
            data = {**data, "qualitative_metrics": {}}
        return data

    @property
    def qualitative_error(self) -> str | None:
        """Error reported by the qualitative evaluator, if any."""
        value = self.qualitative_metrics.get("error_message")
        return str(value) if value else None

    def metric_items(self) -> list[tuple[str, bool | str | int | float | None]]:
        """Qualitative metrics in server order, without the evaluator error."""
        return [(k, v) for k, v in self.qualitative_metrics.items() if k != "error_message"]


class SnippetMetadata(BaseModel):
    """Provenance of a retrieved context snippet."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_file: str | None = None
    header_trail: tuple[str, ...] = ()
    document_id: str | None = None
    chunk_index: int | None = Field(
        default=None,
        validation_alias=AliasChoices("final_chunk_index", "chunk_index"),
    )

    @model_validator(mode="before")
    @classmethod
    def _none_trail(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("header_trail") is None:
            data = {**data, "header_trail": ()}
        return data


class ContextSnippet(BaseModel):
    """Read-only passage retrieved by the service as supporting evidence.

    Accepts the service shape ``{id, score, payload: {text, metadata}}`` as
    well as the flat ``{id, score, source_text, metadata}`` shape.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    score: float | None = None
    source_text: str = ""
    metadata: SnippetMetadata = Field(default_factory=SnippetMetadata)

    @model_validator(mode="before")
    @classmethod
    def _flatten_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        payload = data.pop("payload", None)
        if isinstance(payload, dict):
            data.setdefault("source_text", payload.get("text"))
            data.setdefault("metadata", payload.get("metadata"))
        if data.get("source_text") is None:
            data["source_text"] = ""
        if data.get("metadata") is None:
            data["metadata"] = {}
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return data


class FinalResult(BaseModel):
    """Accepted question plus the evidence it was generated from."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    generated_question: str | None = None
    evaluation_metrics: Evaluation | None = None
    total_regeneration_attempts_made: int = 0
    generation_context_snippets: tuple[ContextSnippet, ...] = Field(
        default=(),
        validation_alias=AliasChoices(
            "generation_context_snippets_metadata", "generation_context_snippets",
        ),
    )
    answerability_context_snippets: tuple[ContextSnippet, ...] = Field(
        default=(),
        validation_alias=AliasChoices(
            "answerability_context_snippets_metadata", "answerability_context_snippets",
        ),
    )

    @model_validator(mode="before")
    @classmethod
    def _none_sequences(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in (
            "generation_context_snippets_metadata",
            "answerability_context_snippets_metadata",
            "total_regeneration_attempts_made",
        ):
            if key in data and data[key] is None:
                del data[key]
        return data

    def top_generation_snippets(self, limit: int = 5) -> tuple[ContextSnippet, ...]:
        return self.generation_context_snippets[:limit]

    def top_answerability_snippets(self, limit: int = 5) -> tuple[ContextSnippet, ...]:
        return self.answerability_context_snippets[:limit]


class JobSnapshot(BaseModel):
    """Partial job state as reported by the service.

    Any subset of fields may be present. ``fields_present()`` returns the
    keys the service actually sent, explicit nulls included.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    job_id: str | None = None
    status: JobStatus | None = None
    message: str | None = None
    error_details: str | None = None
    job_params: dict[str, Any] | None = None
    original_filename: str | None = None
    current_question: str | None = None
    current_evaluations: Evaluation | None = None
    regeneration_attempts_made: int | None = None
    max_regeneration_attempts: int | None = None
    final_result: FinalResult | None = None

    def fields_present(self) -> frozenset[str]:
        return frozenset(self.model_fields_set)


class Job(BaseModel):
    """Authoritative local record of one submitted job."""

    id: str | None = None
    status: JobStatus
    message: str | None = None
    error_details: str | None = None
    job_params: dict[str, Any] | None = None
    original_filename: str | None = None
    current_question: str | None = None
    current_evaluations: Evaluation | None = None
    regeneration_attempts_made: int = 0
    max_regeneration_attempts: int = 15
    final_result: FinalResult | None = None

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_regeneration_attempts - self.regeneration_attempts_made, 0)

    @property
    def is_interactive(self) -> bool:
        return self.status in INTERACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    @property
    def question_is_usable(self) -> bool:
        """Whether ``current_question`` holds a real question, not an error text."""
        return bool(self.current_question) and not str(self.current_question).startswith(
            ERROR_SENTINEL_PREFIX
        )

    @property
    def can_regenerate(self) -> bool:
        return (
            self.is_interactive
            and self.regeneration_attempts_made < self.max_regeneration_attempts
        )

    @property
    def can_finalize(self) -> bool:
        return self.is_interactive and self.question_is_usable

    def invariant_violations(self) -> list[str]:
        """Describe every broken record invariant (empty when consistent)."""
        problems: list[str] = []
        if self.regeneration_attempts_made < 0:
            problems.append("regeneration_attempts_made is negative")
        if self.regeneration_attempts_made > self.max_regeneration_attempts:
            problems.append(
                f"regeneration_attempts_made ({self.regeneration_attempts_made}) exceeds "
                f"max_regeneration_attempts ({self.max_regeneration_attempts})"
            )
        if self.status == JobStatus.COMPLETED and self.final_result is None:
            problems.append("status is completed but final_result is missing")
        if self.status != JobStatus.COMPLETED and self.final_result is not None:
            problems.append(f"final_result present while status is {self.status.value}")
        return problems


__all__ = [
    "ACTION_TRANSITIONS",
    "ContextSnippet",
    "ERROR_SENTINEL_PREFIX",
    "Evaluation",
    "FinalResult",
    "INTERACTIVE",
    "Job",
    "JobAction",
    "JobSnapshot",
    "JobStatus",
    "LlmAnswerability",
    "STATUS_TRANSITIONS",
    "SnippetMetadata",
    "TERMINAL",
    "TERMINAL_FOR_POLLING",
    "allowed_action_targets",
    "is_valid_transition",
]
