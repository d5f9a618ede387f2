"""Per-session store for the job record.

``SessionState`` is the only place the job record is replaced. Every
network request is tagged with a ``RequestTag`` taken from a monotonically
increasing sequence; local transitions consume a sequence number too. A
response is applied only if its tag belongs to the current session epoch
and is newer than the last applied change, so a late poll can never
overwrite a newer local transition, and nothing lands after ``discard()``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from qgen.core.logging import get_logger
from qgen.jobs.errors import ErrorSurface
from qgen.jobs.models import Job, JobAction, JobSnapshot, JobStatus, is_valid_transition
from qgen.jobs.reducer import MergeResult, reduce

_logger = get_logger("session")

JobListener = Callable[[Job | None], None]


@dataclass(frozen=True)
class RequestTag:
    """Correlation tag for one outstanding request."""

    epoch: int
    seq: int
    job_id: str | None


class SessionState:
    """Job record, busy flag and ephemeral error of one session.

    Attributes:
        errors: The session's ephemeral error surface.
    """

    def __init__(self) -> None:
        self.errors = ErrorSurface()
        self._job: Job | None = None
        self._busy = False
        self._outstanding: JobAction | None = None
        self._epoch = 0
        self._seq = 0
        self._last_applied = 0
        self._listeners: list[JobListener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def job(self) -> Job | None:
        return self._job

    @property
    def busy(self) -> bool:
        """True while a call is outstanding or the job is still in progress."""
        return self._busy

    @property
    def outstanding_call(self) -> JobAction | None:
        """The submit/regenerate/finalize call currently on the wire."""
        return self._outstanding

    @property
    def epoch(self) -> int:
        return self._epoch

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Call ``listener`` with the job after every change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._job)
            except Exception:
                _logger.exception("session.listener_failed", listener=repr(listener))

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def issue_tag(self) -> RequestTag:
        """Allocate a tag for a request about to be sent."""
        self._seq += 1
        job_id = self._job.id if self._job is not None else None
        return RequestTag(epoch=self._epoch, seq=self._seq, job_id=job_id)

    def belongs_to_session(self, tag: RequestTag) -> bool:
        """Whether ``tag`` was issued in the current session epoch."""
        return tag.epoch == self._epoch and self._job is not None

    def is_current(self, tag: RequestTag) -> bool:
        """Whether a response carrying ``tag`` may still be applied."""
        return self.belongs_to_session(tag) and tag.seq > self._last_applied

    def _commit_local(self) -> None:
        self._seq += 1
        self._last_applied = self._seq

    def _update(self, **fields: Any) -> Job:
        assert self._job is not None, "no job in session"
        self._job = self._job.model_copy(update=fields)
        self._commit_local()
        self._notify()
        return self._job

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def start_job(self, job: Job, *, outstanding: JobAction | None = JobAction.SUBMIT) -> None:
        """Replace any previous job with a freshly submitted (or resumed) one."""
        self._epoch += 1
        self._job = job
        self._busy = True
        self._outstanding = outstanding
        self.errors.clear()
        self._commit_local()
        _logger.debug("session.job_started", epoch=self._epoch, status=job.status.value)
        self._notify()

    def accept_submission(
        self,
        tag: RequestTag,
        job_id: str,
        message: str,
        original_filename: str | None,
    ) -> bool:
        """Record the id the service assigned. False if the session moved on."""
        if not self.is_current(tag):
            _logger.info("session.stale_response_discarded", kind="submit", job_id=job_id)
            return False
        self._outstanding = None
        self._update(
            id=job_id,
            status=JobStatus.QUEUED,
            message=message,
            original_filename=original_filename,
        )
        return True

    def fail_submission(self, tag: RequestTag, message: str) -> None:
        if not self.is_current(tag):
            return
        self._outstanding = None
        self._busy = False
        self.errors.set(message)
        self._update(status=JobStatus.ERROR, message=message, error_details=message)

    # ------------------------------------------------------------------
    # Regenerate / finalize
    # ------------------------------------------------------------------

    def begin_action(self, action: JobAction, status: JobStatus, message: str) -> None:
        """Mark ``action`` as outstanding and move the job to ``status``."""
        self._outstanding = action
        self._busy = True
        self.errors.clear()
        self._update(status=status, message=message)

    def revert_action(
        self,
        tag: RequestTag,
        status: JobStatus,
        message: str,
        error: str,
    ) -> bool:
        """Undo a failed action, keeping question, evaluations and attempts."""
        if not self.belongs_to_session(tag):
            return False
        self._outstanding = None
        self._busy = False
        self.errors.set(error)
        self._update(status=status, message=message)
        return True

    # ------------------------------------------------------------------
    # Server snapshots
    # ------------------------------------------------------------------

    def apply(
        self,
        snapshot: JobSnapshot,
        tag: RequestTag,
        *,
        ends_call: bool = False,
    ) -> MergeResult | None:
        """Fold a service snapshot into the job record.

        Returns None when the response is stale and was discarded.
        """
        if ends_call and self.belongs_to_session(tag):
            self._outstanding = None
            if not self.is_current(tag):
                self._busy = False
        if not self.is_current(tag):
            _logger.info(
                "session.stale_response_discarded",
                tag_seq=tag.seq,
                last_applied=self._last_applied,
                tag_epoch=tag.epoch,
                epoch=self._epoch,
            )
            return None
        assert self._job is not None
        if snapshot.job_id is not None and self._job.id is not None and snapshot.job_id != self._job.id:
            _logger.warning(
                "session.foreign_snapshot_discarded",
                job_id=self._job.id,
                snapshot_job_id=snapshot.job_id,
            )
            return None

        result = reduce(self._job, snapshot)
        if not is_valid_transition(result.previous_status, result.job.status):
            _logger.warning(
                "job.unexpected_transition",
                job_id=self._job.id,
                from_status=result.previous_status.value,
                to_status=result.job.status.value,
            )

        self._job = result.job
        self._last_applied = tag.seq

        if result.error_message:
            self.errors.set(result.error_message)
        elif result.clear_error:
            self.errors.clear()
        self._busy = self._outstanding is not None or not result.stops_polling

        for problem in result.job.invariant_violations():
            _logger.warning("job.invariant_violated", job_id=result.job.id, problem=problem)

        _logger.debug(
            "session.merged",
            job_id=result.job.id,
            status=result.job.status.value,
            fields=sorted(snapshot.fields_present()),
            stops_polling=result.stops_polling,
        )
        self._notify()
        return result

    def mark_not_found(self, tag: RequestTag, job_id: str, detail: str) -> None:
        """Move the job to ``error`` after the service forgot it."""
        if not self.belongs_to_session(tag):
            return
        self._busy = False
        self.errors.set(f"Job ID {job_id} not found. Polling stopped.")
        self._update(status=JobStatus.ERROR, message="Job not found.", error_details=detail)

    def mark_polling_lost(self, tag: RequestTag, job_id: str) -> None:
        """Give up following the job without touching its reported status."""
        if not self.belongs_to_session(tag):
            return
        self._busy = False
        self.errors.set(f"Lost contact with the server while polling job {job_id}.")
        self._notify()

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def discard(self) -> None:
        """Drop the job and invalidate every in-flight response."""
        self._epoch += 1
        self._job = None
        self._busy = False
        self._outstanding = None
        self.errors.clear()
        self._commit_local()
        _logger.debug("session.discarded", epoch=self._epoch)
        self._notify()


__all__ = ["JobListener", "RequestTag", "SessionState"]
