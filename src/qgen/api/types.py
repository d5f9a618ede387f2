"""Request/response types for the question generation service."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class SourceDocument:
    """The PDF uploaded with a job."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"

    @classmethod
    def from_path(cls, path: Path) -> SourceDocument:
        """Read a document from disk. Raises OSError if it cannot be read."""
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or "application/pdf",
        )

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class SubmitResponse(BaseModel):
    """Body of a successful ``POST /generate-questions``."""

    job_id: str = Field(min_length=1)
    message: str | None = None
