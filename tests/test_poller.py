"""Tests for qgen.jobs.poller.JobStatusPoller."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from qgen.api.client import QuestionGenClient
from qgen.core.config import PollingConfig, QgenConfig
from qgen.jobs.models import Job, JobStatus
from qgen.jobs.poller import JobStatusPoller
from qgen.jobs.state import SessionState
from tests.helpers import FakeService, awaiting_snapshot


def _session() -> SessionState:
    state = SessionState()
    state.start_job(Job(id="job-123", status=JobStatus.QUEUED), outstanding=None)
    return state


class TestPollingLoop:
    """Fetch until a terminal-for-polling status."""

    @pytest.mark.asyncio
    async def test_polls_until_awaiting_feedback(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [
            {"status": "processing_setup", "message": "Parsing PDF"},
            {"status": "generating_initial_question"},
            awaiting_snapshot(),
        ]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)

        assert await poller.start("job-123")
        await asyncio.wait_for(poller.wait(), 2)
        await client.close()

        assert service.status_calls == 3
        assert state.job is not None
        assert state.job.status == JobStatus.AWAITING_FEEDBACK
        assert not state.busy
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_first_fetch_is_immediate(
        self,
        service: FakeService,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [awaiting_snapshot()]
        client = make_client()
        state = _session()
        # A long interval would show up as a timeout if the first fetch waited
        poller = JobStatusPoller(client, state, PollingConfig(interval_seconds=30, max_backoff_seconds=30))
        await poller.start("job-123")
        await asyncio.wait_for(poller.wait(), 1)
        await client.close()
        assert service.status_calls == 1

    @pytest.mark.asyncio
    async def test_restart_replaces_running_loop(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [{"status": "processing_setup"}]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)

        await poller.start("job-123")
        first_task = poller._task
        await poller.start("job-123")
        assert first_task is not None and first_task.done()
        assert poller.is_running

        await poller.stop()
        await poller.stop()
        assert not poller.is_running
        await client.close()

    @pytest.mark.asyncio
    async def test_stop_prevents_further_updates(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [{"status": "processing_setup"}]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)
        await poller.start("job-123")
        await asyncio.sleep(0.03)
        await poller.stop()
        calls = service.status_calls
        await asyncio.sleep(0.05)
        await client.close()
        assert service.status_calls == calls

    @pytest.mark.asyncio
    async def test_wait_without_task_returns(self, fast_config: QgenConfig) -> None:
        poller = JobStatusPoller(QuestionGenClient(fast_config.api), SessionState(), fast_config.polling)
        await poller.wait()


class TestNotFound:
    """404 is fatal for the job id."""

    @pytest.mark.asyncio
    async def test_404_stops_and_marks_error(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [httpx.Response(404, json={"detail": "Job not found"})]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)

        await poller.start("job-123")
        await asyncio.wait_for(poller.wait(), 1)

        assert service.status_calls == 1
        assert state.job is not None
        assert state.job.status == JobStatus.ERROR
        assert state.errors.message == "Job ID job-123 not found. Polling stopped."
        assert poller.is_dead("job-123")

        assert not await poller.start("job-123")
        assert service.status_calls == 1
        await client.close()


class TestTransientFailures:
    """Retry, backoff and give-up."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [
            httpx.Response(500, json={"detail": "busy"}),
            httpx.Response(503, text="overloaded"),
            awaiting_snapshot(),
        ]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)
        await poller.start("job-123")
        await asyncio.wait_for(poller.wait(), 2)
        await client.close()

        assert state.job is not None
        assert state.job.status == JobStatus.AWAITING_FEEDBACK
        assert poller.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_gives_up_after_max_failures(
        self,
        service: FakeService,
        fast_config: QgenConfig,
        make_client: Callable[[], QuestionGenClient],
    ) -> None:
        service.status_responses = [httpx.Response(500, json={"detail": "down"})]
        client = make_client()
        state = _session()
        poller = JobStatusPoller(client, state, fast_config.polling)
        await poller.start("job-123")
        await asyncio.wait_for(poller.wait(), 2)
        await client.close()

        assert service.status_calls == fast_config.polling.max_consecutive_failures
        assert state.job is not None
        assert state.job.status == JobStatus.QUEUED
        assert state.errors.message == "Lost contact with the server while polling job job-123."
        assert not state.busy

    def test_backoff_delays(self, fast_config: QgenConfig) -> None:
        config = PollingConfig(
            interval_seconds=1,
            backoff_after_failures=2,
            max_backoff_seconds=5,
            max_consecutive_failures=10,
        )
        poller = JobStatusPoller(QuestionGenClient(fast_config.api), SessionState(), config)
        delays = []
        for failures in range(1, 6):
            poller._consecutive_failures = failures
            delays.append(poller._next_delay())
        assert delays == [1, 2, 4, 5, 5]
