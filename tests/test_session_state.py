"""Tests for qgen.jobs.state.SessionState: sequencing and error channels."""

from __future__ import annotations

from qgen.jobs.models import Job, JobAction, JobSnapshot, JobStatus
from qgen.jobs.state import SessionState
from tests.helpers import awaiting_snapshot


def _started(status: JobStatus = JobStatus.QUEUED) -> SessionState:
    state = SessionState()
    state.start_job(Job(id="job-123", status=status), outstanding=None)
    return state


def _snap(**fields: object) -> JobSnapshot:
    return JobSnapshot.model_validate(fields)


class TestApply:
    """Applying service snapshots."""

    def test_applies_current_response(self) -> None:
        state = _started()
        tag = state.issue_tag()
        result = state.apply(JobSnapshot.model_validate(awaiting_snapshot()), tag)
        assert result is not None
        assert state.job is not None
        assert state.job.status == JobStatus.AWAITING_FEEDBACK
        assert not state.busy

    def test_in_progress_keeps_busy(self) -> None:
        state = _started()
        state.apply(_snap(status="processing_setup"), state.issue_tag())
        assert state.busy

    def test_older_response_discarded(self) -> None:
        state = _started()
        old = state.issue_tag()
        new = state.issue_tag()
        state.apply(_snap(status="awaiting_feedback", message="new"), new)
        assert state.apply(_snap(status="processing_setup", message="old"), old) is None
        assert state.job is not None
        assert state.job.message == "new"

    def test_local_transition_beats_earlier_poll(self) -> None:
        state = _started(JobStatus.AWAITING_FEEDBACK)
        poll_tag = state.issue_tag()
        state.begin_action(JobAction.REGENERATE, JobStatus.REGENERATING_QUESTION, "Regenerating")
        # Poll issued before the local transition lands afterwards
        assert state.apply(_snap(status="awaiting_feedback"), poll_tag) is None
        assert state.job is not None
        assert state.job.status == JobStatus.REGENERATING_QUESTION

    def test_response_after_discard_ignored(self) -> None:
        state = _started()
        tag = state.issue_tag()
        state.discard()
        assert state.apply(_snap(status="awaiting_feedback"), tag) is None
        assert state.job is None

    def test_response_from_previous_job_ignored(self) -> None:
        state = _started()
        tag = state.issue_tag()
        state.start_job(Job(status=JobStatus.UPLOADING))
        assert state.apply(_snap(status="error", message="old job died"), tag) is None
        assert state.job is not None
        assert state.job.status == JobStatus.UPLOADING

    def test_foreign_job_id_ignored(self) -> None:
        state = _started()
        assert state.apply(_snap(job_id="someone-else", status="completed"), state.issue_tag()) is None
        assert state.job is not None
        assert state.job.status == JobStatus.QUEUED

    def test_error_status_sets_error_surface(self) -> None:
        state = _started()
        state.apply(_snap(status="error", message="Parsing failed"), state.issue_tag())
        assert state.errors.message == "Parsing failed"
        assert not state.busy

    def test_non_error_clears_error_surface(self) -> None:
        state = _started()
        state.errors.set("Network blip")
        state.apply(_snap(status="processing_setup"), state.issue_tag())
        assert state.errors.message is None

    def test_ends_call_clears_outstanding(self) -> None:
        state = _started(JobStatus.AWAITING_FEEDBACK)
        state.begin_action(JobAction.REGENERATE, JobStatus.REGENERATING_QUESTION, "Regenerating")
        tag = state.issue_tag()
        assert state.outstanding_call is JobAction.REGENERATE
        state.apply(JobSnapshot.model_validate(awaiting_snapshot(regeneration_attempts_made=1)), tag, ends_call=True)
        assert state.outstanding_call is None
        assert not state.busy


class TestListeners:
    """Change notification."""

    def test_listener_sees_every_change(self) -> None:
        state = SessionState()
        seen: list[JobStatus | None] = []
        unsubscribe = state.subscribe(lambda job: seen.append(job.status if job else None))
        state.start_job(Job(status=JobStatus.UPLOADING))
        state.accept_submission(state.issue_tag(), "job-1", "queued", "notes.pdf")
        state.discard()
        unsubscribe()
        state.start_job(Job(status=JobStatus.UPLOADING))
        assert seen == [JobStatus.UPLOADING, JobStatus.QUEUED, None]

    def test_failing_listener_does_not_break_others(self) -> None:
        state = SessionState()
        seen: list[Job | None] = []

        def broken(job: Job | None) -> None:
            raise RuntimeError("listener bug")

        state.subscribe(broken)
        state.subscribe(seen.append)
        state.start_job(Job(status=JobStatus.UPLOADING))
        assert len(seen) == 1


class TestSubmissionTransitions:
    """Local submission bookkeeping."""

    def test_accept_submission(self) -> None:
        state = SessionState()
        state.start_job(Job(status=JobStatus.UPLOADING))
        assert state.accept_submission(state.issue_tag(), "job-9", "Job accepted", "notes.pdf")
        assert state.job is not None
        assert state.job.id == "job-9"
        assert state.job.status == JobStatus.QUEUED
        assert state.busy
        assert state.outstanding_call is None

    def test_fail_submission_sets_both_channels(self) -> None:
        state = SessionState()
        state.start_job(Job(status=JobStatus.UPLOADING))
        state.fail_submission(state.issue_tag(), "Only PDF files are accepted")
        assert state.job is not None
        assert state.job.status == JobStatus.ERROR
        assert state.job.error_details == "Only PDF files are accepted"
        assert state.errors.message == "Only PDF files are accepted"
        assert not state.busy

    def test_stale_accept_rejected(self) -> None:
        state = SessionState()
        state.start_job(Job(status=JobStatus.UPLOADING))
        tag = state.issue_tag()
        state.discard()
        assert not state.accept_submission(tag, "job-9", "Job accepted", None)


class TestTerminalMarks:
    """Not-found and polling-lost outcomes."""

    def test_mark_not_found(self) -> None:
        state = _started()
        state.mark_not_found(state.issue_tag(), "job-123", "Job not found")
        assert state.job is not None
        assert state.job.status == JobStatus.ERROR
        assert state.job.error_details == "Job not found"
        assert state.errors.message == "Job ID job-123 not found. Polling stopped."
        assert not state.busy

    def test_mark_polling_lost_keeps_status(self) -> None:
        state = _started(JobStatus.PROCESSING_SETUP)
        state.mark_polling_lost(state.issue_tag(), "job-123")
        assert state.job is not None
        assert state.job.status == JobStatus.PROCESSING_SETUP
        assert state.errors.message == "Lost contact with the server while polling job job-123."
        assert not state.busy

    def test_revert_action_keeps_question(self) -> None:
        state = SessionState()
        state.start_job(
            Job(id="job-123", status=JobStatus.AWAITING_FEEDBACK, current_question="Q1"),
            outstanding=None,
        )
        state.begin_action(JobAction.FINALIZE, JobStatus.FINALIZING, "Finalizing")
        tag = state.issue_tag()
        state.revert_action(tag, JobStatus.AWAITING_FEEDBACK, "Finalization failed: boom", "boom")
        assert state.job is not None
        assert state.job.status == JobStatus.AWAITING_FEEDBACK
        assert state.job.current_question == "Q1"
        assert state.job.error_details is None
        assert state.errors.message == "boom"
