"""Pytest fixtures for qgen tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator

import pytest
import structlog

from qgen.api.client import QuestionGenClient
from qgen.core.config import ApiConfig, PollingConfig, QgenConfig
from tests.helpers import FakeService


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset CLI and structlog logging state around each test."""
    import qgen.cli.helpers as helpers

    original = (
        helpers._log_config.level,
        helpers._log_config.file,
        helpers._log_config.format,
        helpers._log_config.configured,
    )
    original_output_level = helpers._output_level

    helpers._log_config.level = "WARNING"
    helpers._log_config.file = None
    helpers._log_config.format = "console"
    helpers._log_config.configured = False
    helpers._output_level = helpers.OutputLevel.NORMAL

    structlog.reset_defaults()
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    (
        helpers._log_config.level,
        helpers._log_config.file,
        helpers._log_config.format,
        helpers._log_config.configured,
    ) = original
    helpers._output_level = original_output_level

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def fast_config() -> QgenConfig:
    """Config with millisecond polling so tests settle quickly."""
    return QgenConfig(
        api=ApiConfig(base_url="http://qgen.test"),
        polling=PollingConfig(
            interval_seconds=0.01,
            backoff_after_failures=2,
            max_backoff_seconds=0.05,
            max_consecutive_failures=4,
        ),
    )


@pytest.fixture
def make_client(service: FakeService, fast_config: QgenConfig) -> Callable[[], QuestionGenClient]:
    def _make() -> QuestionGenClient:
        return QuestionGenClient(fast_config.api, transport=service.transport())

    return _make
