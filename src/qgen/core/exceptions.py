"""Exception hierarchy for qgen.

All qgen exceptions inherit from QgenError, so callers can catch broadly
(QgenError) or narrowly (e.g. JobNotFoundError). The hierarchy is flat apart
from JobNotFoundError, which is the 404 flavour of ApiError.
"""

from __future__ import annotations


class QgenError(Exception):
    """Base exception for all qgen errors."""


class JobValidationError(QgenError):
    """Raised when an action is rejected locally, before any network call.

    Examples: no PDF supplied, empty feedback, regenerate after the attempt
    budget is spent, finalize while the job is still generating.
    """


class TransportError(QgenError):
    """Raised when the service could not be reached or did not answer in time."""


class ApiError(QgenError):
    """Raised when the service answered with a non-success status or a bad body.

    Attributes:
        status_code: HTTP status code, or None for a malformed 2xx body.
        detail: Human-readable detail extracted from the response.
    """

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class JobNotFoundError(ApiError):
    """Raised when the service does not know the job id (HTTP 404).

    Fatal for polling: the job expired or never existed.
    """

    def __init__(self, job_id: str, detail: str | None = None) -> None:
        super().__init__(detail or f"Job {job_id} not found", status_code=404)
        self.job_id = job_id


class SubmissionError(QgenError):
    """Raised when a job could not be submitted. The job record is in ``error``."""


class ActionFailedError(QgenError):
    """Raised when regenerate or finalize failed on the wire.

    The job has already been reverted to its last interactive status with the
    previous question and attempt count intact.
    """


def describe_error(exc: BaseException, fallback: str) -> str:
    """Return the message a user should see for ``exc``.

    Prefers the server's structured detail, then the exception text, then
    ``fallback``.
    """
    if isinstance(exc, ApiError) and exc.detail:
        return exc.detail
    text = str(exc)
    return text or fallback
