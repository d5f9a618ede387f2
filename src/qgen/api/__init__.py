"""HTTP access to the question generation service."""

from qgen.api.client import QuestionGenClient
from qgen.api.types import SourceDocument, SubmitResponse

__all__ = ["QuestionGenClient", "SourceDocument", "SubmitResponse"]
