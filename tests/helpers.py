"""Shared test helpers for qgen tests: scripted service and snapshot builders."""

from __future__ import annotations

import json
from typing import Any

import httpx


class FakeService:
    """Scripted stand-in for the question generation service.

    ``status_responses`` are served in order for ``GET /job-status/{id}``;
    the last one repeats once the list is exhausted. Each entry is a dict
    (JSON body, 200) or an ``httpx.Response``.
    """

    def __init__(self) -> None:
        self.job_id = "job-123"
        self.submit_response: dict[str, Any] | httpx.Response = {
            "job_id": self.job_id,
            "message": "Job accepted",
        }
        self.status_responses: list[dict[str, Any] | httpx.Response] = []
        self.regenerate_response: dict[str, Any] | httpx.Response | None = None
        self.finalize_response: dict[str, Any] | httpx.Response | None = None
        self.requests: list[httpx.Request] = []
        self.status_calls = 0

    def _serve(self, item: dict[str, Any] | httpx.Response | None) -> httpx.Response:
        if item is None:
            return httpx.Response(500, json={"detail": "not scripted"})
        if isinstance(item, httpx.Response):
            # Fresh copy: a scripted response may be served more than once
            return httpx.Response(item.status_code, headers=item.headers, content=item.content)
        return httpx.Response(200, json=item)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/generate-questions":
            return self._serve(self.submit_response)
        if path.startswith("/job-status/"):
            self.status_calls += 1
            if not self.status_responses:
                return httpx.Response(404, json={"detail": "Job not found"})
            index = min(self.status_calls, len(self.status_responses)) - 1
            return self._serve(self.status_responses[index])
        if path.startswith("/regenerate-question/"):
            return self._serve(self.regenerate_response)
        if path.startswith("/finalize-question/"):
            return self._serve(self.finalize_response)
        return httpx.Response(404, json={"detail": "Not Found"})

    def json_bodies(self, prefix: str) -> list[dict[str, Any]]:
        return [
            json.loads(r.content) for r in self.requests if r.url.path.startswith(prefix)
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def awaiting_snapshot(job_id: str = "job-123", **overrides: Any) -> dict[str, Any]:
    """Full snapshot of a job waiting for feedback on its first question."""
    body: dict[str, Any] = {
        "job_id": job_id,
        "status": "awaiting_feedback",
        "message": "Question ready for review.",
        "original_filename": "notes.pdf",
        "job_params": {"marks_for_question": "10", "taxonomy_level": "Evaluate"},
        "current_question": "Explain how BFS finds shortest paths in unweighted graphs.",
        "current_evaluations": {
            "qsts_score": 0.8123,
            "llm_answerability": {"is_answerable": True, "reasoning": "Covered in section 2."},
            "qualitative_metrics": {"clarity": True, "difficulty_alignment": "high"},
            "generation_status_message": "Generated successfully",
        },
        "regeneration_attempts_made": 0,
        "max_regeneration_attempts": 3,
    }
    body.update(overrides)
    return body


def completed_snapshot(job_id: str = "job-123", question: str | None = None) -> dict[str, Any]:
    question = question or "Explain how BFS finds shortest paths in unweighted graphs."
    return {
        "job_id": job_id,
        "status": "completed",
        "message": "Question finalized.",
        "current_question": question,
        "final_result": {
            "generated_question": question,
            "evaluation_metrics": {"qsts_score": 0.8123},
            "total_regeneration_attempts_made": 0,
            "generation_context_snippets_metadata": [
                {"id": 1, "score": 0.91, "payload": {"text": "BFS visits nodes level by level."}},
            ],
            "answerability_context_snippets_metadata": None,
        },
    }
