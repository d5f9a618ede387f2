"""Pure merge of sparse service snapshots into the local job record.

No I/O happens here: ``merge`` and ``reduce`` are plain functions over the
record shapes in ``qgen.jobs.models`` and are tested without any network code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from qgen.jobs.models import (
    TERMINAL_FOR_POLLING,
    Job,
    JobSnapshot,
    JobStatus,
)

# Snapshot fields copied onto the record. ``job_id`` is deliberately absent:
# the record's id is set once at submission and never rewritten by a poll.
MERGEABLE_FIELDS: tuple[str, ...] = (
    "status",
    "message",
    "error_details",
    "job_params",
    "original_filename",
    "current_question",
    "current_evaluations",
    "regeneration_attempts_made",
    "max_regeneration_attempts",
    "final_result",
)

# Record fields that reject an explicit null (the record needs a value)
_NON_NULLABLE = frozenset({
    "status",
    "regeneration_attempts_made",
    "max_regeneration_attempts",
})


class StatusBucket(str, Enum):
    """Polling classification of a status."""

    TERMINAL_FOR_POLLING = "terminal_for_polling"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class MergeResult:
    """Outcome of folding one snapshot into the record.

    Attributes:
        job: The merged record.
        previous_status: Status before the merge.
        bucket: Polling classification of the merged status.
        error_message: Text for the ephemeral error surface when the merged
            status is ``error``; None otherwise.
        clear_error: True when the ephemeral error must be cleared.
    """

    job: Job
    previous_status: JobStatus
    bucket: StatusBucket
    error_message: str | None
    clear_error: bool

    @property
    def stops_polling(self) -> bool:
        return self.bucket is StatusBucket.TERMINAL_FOR_POLLING

    @property
    def status_changed(self) -> bool:
        return self.job.status != self.previous_status


def classify(status: JobStatus) -> StatusBucket:
    """Place ``status`` in exactly one polling bucket."""
    if status in TERMINAL_FOR_POLLING:
        return StatusBucket.TERMINAL_FOR_POLLING
    return StatusBucket.IN_PROGRESS


def merge(current: Job, incoming: JobSnapshot) -> Job:
    """Return ``current`` with every field present in ``incoming`` replaced.

    Fields the snapshot omitted keep their current value. A field the
    snapshot carried as an explicit null clears the record's value, except
    for the fields the record cannot hold empty (status and the attempt
    counters), where a null is treated as absent.
    """
    present = incoming.fields_present()
    updates = {}
    for name in MERGEABLE_FIELDS:
        if name not in present:
            continue
        value = getattr(incoming, name)
        if value is None and name in _NON_NULLABLE:
            continue
        updates[name] = value
    if not updates:
        return current
    return current.model_copy(update=updates)


def reduce(current: Job, incoming: JobSnapshot) -> MergeResult:
    """Merge ``incoming`` and derive the polling and error-channel outcome."""
    job = merge(current, incoming)
    error_message: str | None = None
    clear_error = False
    if job.status == JobStatus.ERROR:
        error_message = job.message or job.error_details or None
    else:
        clear_error = True
    return MergeResult(
        job=job,
        previous_status=current.status,
        bucket=classify(job.status),
        error_message=error_message,
        clear_error=clear_error,
    )


__all__ = ["MERGEABLE_FIELDS", "MergeResult", "StatusBucket", "classify", "merge", "reduce"]
