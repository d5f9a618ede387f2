"""Configuration models for qgen.

Defines Pydantic v2 models for the service connection, the polling loop,
the interactive session and the default generation parameters. Loaded from
YAML; the service URL can also come from the ``QGEN_API_URL`` environment
variable.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from qgen.core.logging import get_logger

_logger = get_logger("config")

API_URL_ENV = "QGEN_API_URL"
DEFAULT_API_URL = "http://localhost:8002"

TaxonomyLevel = Literal["Remember", "Understand", "Apply", "Analyze", "Evaluate", "Create"]
Marks = Literal["5", "10", "15", "20"]


class ApiConfig(BaseModel):
    """Connection settings for the question generation service."""

    base_url: str = Field(
        default=DEFAULT_API_URL,
        description="Base URL of the service, without a trailing slash",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for status, regenerate and finalize calls. "
        "Regeneration runs the generator synchronously, so keep this generous.",
    )
    upload_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Timeout for the multipart PDF upload",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class PollingConfig(BaseModel):
    """Status polling settings."""

    interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between two status fetches",
    )
    backoff_after_failures: int = Field(
        default=3,
        ge=1,
        description="Consecutive transient failures before the delay starts doubling",
    )
    max_backoff_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for the backed-off delay",
    )
    max_consecutive_failures: int = Field(
        default=12,
        ge=1,
        description="Consecutive transient failures after which polling gives up",
    )

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> PollingConfig:
        if self.max_backoff_seconds < self.interval_seconds:
            raise ValueError("max_backoff_seconds must be >= interval_seconds")
        return self


class SessionConfig(BaseModel):
    """Interactive session settings."""

    default_max_regeneration_attempts: int = Field(
        default=15,
        ge=0,
        description="Attempt budget assumed until the server reports its own",
    )


class GenerationParams(BaseModel):
    """Parameters submitted alongside the PDF.

    Defaults match the service's reference form.
    """

    academic_level: str = Field(default="Undergraduate", min_length=1)
    major: str = Field(default="Computer Science", min_length=1)
    course_name: str = Field(default="Data Structures and Algorithms", min_length=1)
    taxonomy_level: TaxonomyLevel = Field(
        default="Evaluate",
        description="Bloom's taxonomy level the question should target",
    )
    marks_for_question: Marks = Field(default="10")
    topics_list: str = Field(
        default="Breadth First Search, Shortest path",
        min_length=1,
        description="Comma-separated key topics",
    )
    retrieval_limit_generation: int = Field(
        default=15,
        ge=1,
        description="Number of context snippets retrieved for generation",
    )
    similarity_threshold_generation: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for a retrieved snippet to be used",
    )
    generate_diagrams: bool = Field(default=False)

    @field_validator("marks_for_question", mode="before")
    @classmethod
    def _coerce_marks(cls, v: object) -> object:
        # YAML and CLI users naturally write marks as integers
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def to_form_fields(self) -> dict[str, str]:
        """Render every field as a multipart form value.

        Booleans are sent lowercase, the way browsers serialise form data.
        """
        fields: dict[str, str] = {}
        for name, value in self.model_dump().items():
            if isinstance(value, bool):
                fields[name] = "true" if value else "false"
            else:
                fields[name] = str(value)
        return fields


class QgenConfig(BaseModel):
    """Top-level qgen configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    generation: GenerationParams = Field(
        default_factory=GenerationParams,
        description="Default generation parameters, overridable per submission",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> QgenConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)


def load_config(path: Path | None = None) -> QgenConfig:
    """Load configuration from ``path`` (if it exists) and the environment.

    ``QGEN_API_URL`` wins over the file's ``api.base_url``.
    """
    if path is not None and path.exists():
        config = QgenConfig.from_yaml(path)
        _logger.debug("config.loaded", path=str(path))
    else:
        if path is not None:
            _logger.warning("config.file_missing", path=str(path))
        config = QgenConfig()

    env_url = os.environ.get(API_URL_ENV)
    if env_url:
        config = config.model_copy(
            update={"api": ApiConfig(
                base_url=env_url,
                request_timeout_seconds=config.api.request_timeout_seconds,
                upload_timeout_seconds=config.api.upload_timeout_seconds,
            )},
        )
    return config


__all__ = [
    "API_URL_ENV",
    "ApiConfig",
    "DEFAULT_API_URL",
    "GenerationParams",
    "PollingConfig",
    "QgenConfig",
    "SessionConfig",
    "load_config",
]
