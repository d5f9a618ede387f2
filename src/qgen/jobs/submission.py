"""Job submission: PDF + parameters in, job id out, poller started."""

from __future__ import annotations

from typing import TYPE_CHECKING

from qgen.api.types import SourceDocument
from qgen.core.config import GenerationParams
from qgen.core.exceptions import JobValidationError, QgenError, SubmissionError, describe_error
from qgen.core.logging import get_logger
from qgen.jobs.models import Job, JobStatus

if TYPE_CHECKING:
    from qgen.api.client import QuestionGenClient
    from qgen.jobs.poller import JobStatusPoller
    from qgen.jobs.state import SessionState

_logger = get_logger("submission")

MISSING_FILE_MESSAGE = "Please upload a PDF file."
UPLOADING_MESSAGE = "Uploading PDF and submitting job..."
SUBMITTED_MESSAGE = "Job submitted, processing..."
SUBMIT_FAILED_MESSAGE = "Failed to submit job."


class JobSubmissionClient:
    """Creates the session's job and hands it to the poller.

    Args:
        client: Service client.
        state: Session store receiving the new job.
        poller: Poller started once the service assigned an id.
        default_max_attempts: Attempt budget assumed until the service
            reports its own.
    """

    def __init__(
        self,
        client: QuestionGenClient,
        state: SessionState,
        poller: JobStatusPoller,
        *,
        default_max_attempts: int = 15,
    ) -> None:
        self._client = client
        self._state = state
        self._poller = poller
        self._default_max_attempts = default_max_attempts

    async def submit(
        self,
        params: GenerationParams,
        document: SourceDocument | None,
    ) -> str:
        """Submit ``document`` with ``params`` and start polling.

        Returns:
            The job id assigned by the service.

        Raises:
            JobValidationError: No document, or a submission is already
                on the wire. Nothing was sent.
            SubmissionError: The service rejected the upload or could not
                be reached. The job record is left in ``error``.
        """
        if document is None:
            self._state.errors.set(MISSING_FILE_MESSAGE)
            raise JobValidationError(MISSING_FILE_MESSAGE)
        if self._state.outstanding_call is not None:
            message = "A request is already in progress."
            self._state.errors.set(message)
            raise JobValidationError(message)

        # A new submission ends whatever the session was following before
        await self._poller.stop()
        self._state.start_job(Job(
            status=JobStatus.UPLOADING,
            message=UPLOADING_MESSAGE,
            max_regeneration_attempts=self._default_max_attempts,
        ))
        tag = self._state.issue_tag()
        _logger.info(
            "submission.started",
            filename=document.filename,
            size_bytes=document.size_bytes,
            taxonomy_level=params.taxonomy_level,
        )

        try:
            response = await self._client.submit_job(params, document)
        except QgenError as exc:
            message = describe_error(exc, SUBMIT_FAILED_MESSAGE)
            _logger.error("submission.failed", filename=document.filename, error=message)
            self._state.fail_submission(tag, message)
            raise SubmissionError(message) from exc

        accepted = self._state.accept_submission(
            tag,
            response.job_id,
            response.message or SUBMITTED_MESSAGE,
            document.filename,
        )
        if not accepted:
            # Session was reset while the upload was in flight
            raise SubmissionError(
                f"Session was reset before job {response.job_id} was accepted."
            )
        _logger.info("submission.accepted", job_id=response.job_id)
        await self._poller.start(response.job_id)
        return response.job_id


__all__ = ["JobSubmissionClient", "MISSING_FILE_MESSAGE"]
