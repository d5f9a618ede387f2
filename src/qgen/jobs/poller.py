"""Periodic status polling for one job.

``JobStatusPoller`` owns at most one asyncio task. The task fetches the job
status immediately, then every ``interval_seconds``, feeding each snapshot
to the session store, until the job reaches a terminal-for-polling status,
the service reports the job as unknown, or ``stop()`` is called.

Transient failures (timeouts, 5xx, malformed bodies) are retried on the
next tick; after ``backoff_after_failures`` consecutive failures the delay
doubles per failure up to ``max_backoff_seconds``, and after
``max_consecutive_failures`` the poller gives up.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from qgen.core.config import PollingConfig
from qgen.core.exceptions import JobNotFoundError, QgenError
from qgen.core.logging import JobContext, get_current_context, get_logger, with_context

if TYPE_CHECKING:
    from qgen.api.client import QuestionGenClient
    from qgen.jobs.state import SessionState

_logger = get_logger("poller")


class JobStatusPoller:
    """Recurring status fetch for the session's active job."""

    def __init__(
        self,
        client: QuestionGenClient,
        state: SessionState,
        config: PollingConfig | None = None,
    ) -> None:
        self._client = client
        self._state = state
        self._config = config or PollingConfig()
        self._task: asyncio.Task[None] | None = None
        self._job_id: str | None = None
        self._consecutive_failures = 0
        self._dead_jobs: set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def is_dead(self, job_id: str) -> bool:
        """Whether the service reported ``job_id`` as not found."""
        return job_id in self._dead_jobs

    async def start(self, job_id: str) -> bool:
        """Start following ``job_id``, replacing any running loop.

        Returns False (without polling) if the job was already reported
        as not found.
        """
        await self.stop()
        if job_id in self._dead_jobs:
            _logger.warning("poller.start_refused", job_id=job_id, reason="job_not_found")
            return False
        self._job_id = job_id
        self._consecutive_failures = 0
        # The loop task inherits the context, so every poll entry carries job_id
        ctx = get_current_context() or JobContext(component="poller")
        with with_context(ctx.with_job(job_id)):
            self._task = asyncio.create_task(self._loop(job_id), name=f"qgen-poller-{job_id}")
        self._task.add_done_callback(self._on_loop_done)
        _logger.info("poller.started", job_id=job_id, interval=self._config.interval_seconds)
        return True

    async def stop(self) -> None:
        """Cancel the loop. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            _logger.info("poller.stopped", job_id=self._job_id)

    async def wait(self) -> None:
        """Wait until the current loop ends on its own (or is stopped)."""
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        _logger.error("poller.loop_died_unexpectedly", error=str(exc), task_name=task.get_name())
        if task is self._task and self._job_id is not None:
            self._state.mark_polling_lost(self._state.issue_tag(), self._job_id)

    def _next_delay(self) -> float:
        """Delay before the next fetch given the current failure streak."""
        interval = self._config.interval_seconds
        over = self._consecutive_failures - self._config.backoff_after_failures
        if over < 0:
            return interval
        return min(interval * (2 ** (over + 1)), self._config.max_backoff_seconds)

    async def _loop(self, job_id: str) -> None:
        while True:
            tag = self._state.issue_tag()
            try:
                snapshot = await self._client.get_job_status(job_id)
            except JobNotFoundError as exc:
                self._dead_jobs.add(job_id)
                _logger.error("poller.job_not_found", job_id=job_id, detail=exc.detail)
                self._state.mark_not_found(tag, job_id, exc.detail)
                return
            except QgenError as exc:
                self._consecutive_failures += 1
                _logger.warning(
                    "poller.fetch_failed",
                    job_id=job_id,
                    error=str(exc),
                    consecutive_failures=self._consecutive_failures,
                )
                if self._consecutive_failures >= self._config.max_consecutive_failures:
                    _logger.error(
                        "poller.gave_up",
                        job_id=job_id,
                        consecutive_failures=self._consecutive_failures,
                    )
                    self._state.mark_polling_lost(tag, job_id)
                    return
                await asyncio.sleep(self._next_delay())
                continue

            if self._consecutive_failures:
                _logger.info(
                    "poller.recovered",
                    job_id=job_id,
                    after_failures=self._consecutive_failures,
                )
            self._consecutive_failures = 0

            result = self._state.apply(snapshot, tag)
            if result is None:
                if not self._state.belongs_to_session(tag):
                    _logger.debug("poller.session_ended", job_id=job_id)
                    return
            elif result.stops_polling:
                _logger.info("poller.finished", job_id=job_id, status=result.job.status.value)
                return

            await asyncio.sleep(self._config.interval_seconds)


__all__ = ["JobStatusPoller"]
