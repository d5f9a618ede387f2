"""Async HTTP client for the question generation service.

Wraps the four service endpoints with httpx and maps every failure onto
the qgen exception hierarchy:

- 404 on a job endpoint -> ``JobNotFoundError``
- any other non-2xx, or a body that does not parse -> ``ApiError``
- connection errors and timeouts -> ``TransportError``

The client never retries; retry policy belongs to the poller.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from qgen.api.types import SourceDocument, SubmitResponse
from qgen.core.config import ApiConfig, GenerationParams
from qgen.core.exceptions import ApiError, JobNotFoundError, TransportError
from qgen.core.logging import get_logger
from qgen.jobs.models import JobSnapshot

_logger = get_logger("api.client")

# Longest slice of a non-JSON error body quoted back to the user
_MAX_ERROR_TEXT = 200


def extract_detail(response: httpx.Response) -> str:
    """Pull a human-readable detail out of an error response.

    Understands FastAPI bodies: ``{"detail": "text"}`` and validation
    errors ``{"detail": [{"loc": [...], "msg": "..."}]}``. Falls back to the
    raw body, then to the status line.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and "detail" in body:
        detail = body["detail"]
        if isinstance(detail, str) and detail:
            return detail
        if isinstance(detail, list):
            messages = []
            for item in detail:
                if isinstance(item, dict) and item.get("msg"):
                    loc = item.get("loc") or []
                    field = ".".join(str(part) for part in loc if part != "body")
                    messages.append(f"{field}: {item['msg']}" if field else str(item["msg"]))
                elif isinstance(item, str):
                    messages.append(item)
            if messages:
                return "; ".join(messages)

    text = response.text.strip()
    if text:
        return f"HTTP {response.status_code}: {text[:_MAX_ERROR_TEXT]}"
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


class QuestionGenClient:
    """Client for the question generation REST API.

    Example usage:
        client = QuestionGenClient(ApiConfig(base_url="http://localhost:8002"))
        submitted = await client.submit_job(params, SourceDocument.from_path(pdf))
        snapshot = await client.get_job_status(submitted.job_id)
        await client.close()

    Args:
        config: Connection settings.
        transport: Optional httpx transport, used by tests to stub the server.
    """

    def __init__(
        self,
        config: ApiConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ApiConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def _send(
        self,
        method: str,
        path: str,
        *,
        job_id: str | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Issue one request and return the decoded JSON body."""
        client = await self._get_client()
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            _logger.debug("api.timeout", method=method, path=path)
            raise TransportError(f"Request to {path} timed out") from exc
        except httpx.RequestError as exc:
            _logger.debug("api.request_error", method=method, path=path, error=str(exc))
            raise TransportError(str(exc) or f"Could not reach {self.base_url}") from exc

        if response.status_code == 404 and job_id is not None:
            raise JobNotFoundError(job_id, extract_detail(response))
        if not response.is_success:
            detail = extract_detail(response)
            _logger.debug(
                "api.error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                detail=detail,
            )
            raise ApiError(detail, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                f"Malformed response from {path}", status_code=response.status_code
            ) from exc

    @staticmethod
    def _parse_snapshot(body: Any, path: str) -> JobSnapshot:
        if not isinstance(body, dict):
            raise ApiError(f"Unexpected response shape from {path}")
        try:
            return JobSnapshot.model_validate(body)
        except ValidationError as exc:
            raise ApiError(f"Invalid job snapshot from {path}: {exc.error_count()} error(s)") from exc

    async def submit_job(
        self,
        params: GenerationParams,
        document: SourceDocument,
    ) -> SubmitResponse:
        """Upload ``document`` with ``params`` and return the new job id."""
        path = "/generate-questions"
        body = await self._send(
            "POST",
            path,
            data=params.to_form_fields(),
            files={"file": (document.filename, document.content, document.content_type)},
            timeout=self._config.upload_timeout_seconds,
        )
        try:
            return SubmitResponse.model_validate(body)
        except ValidationError as exc:
            raise ApiError(f"Invalid submission response from {path}") from exc

    async def get_job_status(self, job_id: str) -> JobSnapshot:
        """Fetch the current (possibly partial) snapshot of ``job_id``."""
        path = f"/job-status/{job_id}"
        body = await self._send("GET", path, job_id=job_id)
        _logger.debug("api.status_received", job_id=job_id, snapshot=body)
        return self._parse_snapshot(body, path)

    async def regenerate_question(self, job_id: str, feedback: str) -> JobSnapshot:
        """Ask for a new question guided by ``feedback``."""
        path = f"/regenerate-question/{job_id}"
        body = await self._send("POST", path, job_id=job_id, json={"user_feedback": feedback})
        return self._parse_snapshot(body, path)

    async def finalize_question(self, job_id: str, question: str) -> JobSnapshot:
        """Accept ``question`` as the job's final result."""
        path = f"/finalize-question/{job_id}"
        body = await self._send("POST", path, job_id=job_id, json={"final_question": question})
        return self._parse_snapshot(body, path)

    async def close(self) -> None:
        """Close the pooled HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


__all__ = ["QuestionGenClient", "extract_detail"]
