"""Session controller for the regenerate/finalize feedback loop.

``InteractionController`` is the one object a caller (the CLI, a test, an
embedding application) talks to. It owns the session store, the poller and
the submission client, and enforces the gating rules of the interactive
loop:

- regenerate needs an interactive status, feedback text, no call in flight
  and attempts left in the budget;
- finalize needs an interactive status and a usable current question;
- a failed regenerate/finalize puts the job back where it was, keeping the
  last good question and attempt count.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType

from qgen.api.client import QuestionGenClient
from qgen.api.types import SourceDocument
from qgen.core.config import GenerationParams, QgenConfig
from qgen.core.exceptions import (
    ActionFailedError,
    JobValidationError,
    QgenError,
    describe_error,
)
from qgen.core.logging import JobContext, get_logger, with_context
from qgen.jobs.errors import ErrorSurface
from qgen.jobs.models import Job, JobAction, JobSnapshot, JobStatus, allowed_action_targets
from qgen.jobs.poller import JobStatusPoller
from qgen.jobs.state import JobListener, SessionState
from qgen.jobs.submission import JobSubmissionClient

_logger = get_logger("controller")

REGENERATING_MESSAGE = "Submitting feedback and regenerating question..."
FINALIZING_MESSAGE = "Finalizing question..."


class InteractionController:
    """Drives one job from submission to a finalized question.

    Example usage:
        async with InteractionController.from_config(config) as session:
            await session.submit(config.generation, SourceDocument.from_path(pdf))
            job = await session.wait_until_settled()
            job = await session.regenerate("Make it harder")
            job = await session.finalize()

    Args:
        client: Service client. Closed by ``close()`` only if ``owns_client``.
        config: Polling and session settings.
        owns_client: Whether ``close()`` should also close ``client``.
    """

    def __init__(
        self,
        client: QuestionGenClient,
        config: QgenConfig | None = None,
        *,
        owns_client: bool = False,
    ) -> None:
        self._config = config or QgenConfig()
        self._client = client
        self._owns_client = owns_client
        self.log_context = JobContext(component="session")
        self.state = SessionState()
        self.poller = JobStatusPoller(client, self.state, self._config.polling)
        self.submission = JobSubmissionClient(
            client,
            self.state,
            self.poller,
            default_max_attempts=self._config.session.default_max_regeneration_attempts,
        )

    @classmethod
    def from_config(cls, config: QgenConfig) -> InteractionController:
        """Build a controller with its own service client."""
        return cls(QuestionGenClient(config.api), config, owns_client=True)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def job(self) -> Job | None:
        return self.state.job

    @property
    def errors(self) -> ErrorSurface:
        return self.state.errors

    @property
    def busy(self) -> bool:
        return self.state.busy

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Call ``listener`` with the job after every change."""
        return self.state.subscribe(listener)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def submit(
        self,
        params: GenerationParams,
        document: SourceDocument | None,
    ) -> str:
        """Submit a new job. See ``JobSubmissionClient.submit``."""
        with with_context(self.log_context):
            return await self.submission.submit(params, document)

    async def resume(self, job_id: str) -> Job | None:
        """Attach the session to a job submitted earlier.

        Fetches the job once and keeps polling if it is still in progress.

        Raises:
            JobNotFoundError: The service does not know ``job_id``.
            TransportError, ApiError: The first fetch failed.
        """
        await self.poller.stop()
        snapshot = await self._client.get_job_status(job_id)
        self.state.start_job(
            Job(
                id=job_id,
                status=snapshot.status or JobStatus.QUEUED,
                max_regeneration_attempts=self._config.session.default_max_regeneration_attempts,
            ),
            outstanding=None,
        )
        result = self.state.apply(snapshot, self.state.issue_tag())
        _logger.info("controller.resumed", job_id=job_id, status=snapshot.status)
        if result is not None and not result.stops_polling:
            with with_context(self.log_context):
                await self.poller.start(job_id)
        return self.state.job

    async def wait_until_settled(self, timeout: float | None = None) -> Job | None:
        """Wait for polling to stop, then return the job.

        Raises:
            TimeoutError: The job was still in progress after ``timeout``.
        """
        await asyncio.wait_for(self.poller.wait(), timeout)
        return self.state.job

    def _reject(self, message: str) -> JobValidationError:
        self.state.errors.set(message)
        _logger.info("controller.action_rejected", reason=message)
        return JobValidationError(message)

    def _require_job(self, action: JobAction) -> Job:
        job = self.state.job
        if job is None or job.id is None:
            raise self._reject(f"No job to {action.value}.")
        if self.state.busy:
            raise self._reject("Another request is still in progress.")
        if not allowed_action_targets(job.status, action):
            raise self._reject(
                f"Cannot {action.value} while the job is {job.status.value.replace('_', ' ')}."
            )
        return job

    async def regenerate(self, feedback: str) -> Job | None:
        """Ask the service for a new question guided by ``feedback``.

        Returns:
            The merged job, or None if the session was reset meanwhile.

        Raises:
            JobValidationError: The request was not allowed; nothing sent.
            ActionFailedError: The request failed; the job was reverted.
        """
        job = self._require_job(JobAction.REGENERATE)
        if job.regeneration_attempts_made >= job.max_regeneration_attempts:
            raise self._reject(
                "Maximum regeneration attempts reached. "
                "You can only finalize the current question or start a new job."
            )
        text = (feedback or "").strip()
        if not text:
            raise self._reject("Please provide feedback before regenerating.")

        job_id = job.id
        assert job_id is not None
        return await self._run_action(
            JobAction.REGENERATE,
            job,
            status=JobStatus.REGENERATING_QUESTION,
            message=REGENERATING_MESSAGE,
            call=lambda: self._client.regenerate_question(job_id, text),
            failure_label="Regeneration failed",
            fallback="Failed to regenerate question.",
        )

    async def finalize(self) -> Job | None:
        """Accept the currently displayed question as the final result.

        Returns:
            The merged job, or None if the session was reset meanwhile.

        Raises:
            JobValidationError: The request was not allowed; nothing sent.
            ActionFailedError: The request failed; the job was reverted.
        """
        job = self._require_job(JobAction.FINALIZE)
        if not job.question_is_usable:
            raise self._reject("No current question to finalize.")

        job_id = job.id
        question = job.current_question
        assert job_id is not None and question is not None
        result = await self._run_action(
            JobAction.FINALIZE,
            job,
            status=JobStatus.FINALIZING,
            message=FINALIZING_MESSAGE,
            call=lambda: self._client.finalize_question(job_id, question),
            failure_label="Finalization failed",
            fallback="Failed to finalize question.",
        )
        if result is not None and result.final_result is not None:
            if result.final_result.generated_question != question:
                _logger.warning(
                    "controller.finalized_question_differs",
                    job_id=result.id,
                    sent=question,
                    received=result.final_result.generated_question,
                )
        return result

    async def _run_action(
        self,
        action: JobAction,
        job: Job,
        *,
        status: JobStatus,
        message: str,
        call: Callable[[], Awaitable[JobSnapshot]],
        failure_label: str,
        fallback: str,
    ) -> Job | None:
        # Failures restore the status held before the call, so a job at
        # max_attempts_reached stays there instead of reopening regeneration
        revert_status = job.status
        self.state.begin_action(action, status, message)
        tag = self.state.issue_tag()
        _logger.info("controller.action_started", action=action.value, job_id=job.id)

        try:
            snapshot = await call()
        except QgenError as exc:
            error = describe_error(exc, fallback)
            _logger.warning(
                "controller.action_failed",
                action=action.value,
                job_id=job.id,
                error=error,
            )
            self.state.revert_action(
                tag,
                status=revert_status,
                message=f"{failure_label}: {error}",
                error=error,
            )
            raise ActionFailedError(error) from exc

        result = self.state.apply(snapshot, tag, ends_call=True)
        if result is None:
            return None
        _logger.info(
            "controller.action_completed",
            action=action.value,
            job_id=job.id,
            status=result.job.status.value,
            attempts=result.job.regeneration_attempts_made,
        )
        if not result.stops_polling and result.job.id is not None:
            # Service accepted the request but is still working on it
            with with_context(self.log_context):
                await self.poller.start(result.job.id)
        return result.job

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def reset(self) -> None:
        """Stop polling, drop the job and clear the error surface."""
        await self.poller.stop()
        self.state.discard()
        _logger.debug("controller.reset")

    async def close(self) -> None:
        """End the session: reset, then release the HTTP client if owned."""
        await self.reset()
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> InteractionController:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["InteractionController"]
