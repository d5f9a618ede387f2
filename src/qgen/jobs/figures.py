"""Extraction of generated figure descriptions from context snippets.

During ingestion the service replaces images with a text block written by
an image captioning model:

    ### Figure 3: BFS traversal order
    **Figure Description (Generated by Moondream):**
    A graph with nodes A-F ...
    ---
    **Original Image Reference:** `figures/page4_img1.png`

This module finds those blocks among the retrieved snippets.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from qgen.jobs.models import ContextSnippet

FIGURE_MARKER = "**Figure Description (Generated by Moondream):**"

_TITLE_RE = re.compile(r"^###\s*(.*)", re.MULTILINE)
_TITLE_MARKER_RE = re.compile(r"\*\*Figure Description.*?---", re.DOTALL)
_DESCRIPTION_RE = re.compile(
    r"\*\*Figure Description \(Generated by Moondream\):\*\*\s*([\s\S]*?)\s*---",
    re.MULTILINE,
)
_ORIGINAL_REF_RE = re.compile(r"\*\*Original Image Reference.*?\*\*\s*`([^`]+)`", re.MULTILINE)

NO_DESCRIPTION = "Could not extract description."
NO_REFERENCE = "N/A"


@dataclass(frozen=True)
class FigureDescription:
    """A figure recovered from a snippet."""

    title: str
    description: str
    original_ref: str
    snippet_id: str | None = None


def has_figure(snippet: ContextSnippet) -> bool:
    return FIGURE_MARKER in snippet.source_text


def parse_figure(snippet: ContextSnippet, index: int = 0) -> FigureDescription | None:
    """Parse the figure block of ``snippet``; None if it has none.

    ``index`` (zero-based) numbers the fallback title.
    """
    text = snippet.source_text
    if FIGURE_MARKER not in text:
        return None

    title = ""
    title_match = _TITLE_RE.search(text)
    if title_match and title_match.group(1):
        title = _TITLE_MARKER_RE.sub("", title_match.group(1)).strip()
    if not title:
        title = f"Image Description {index + 1}"

    desc_match = _DESCRIPTION_RE.search(text)
    description = desc_match.group(1).strip() if desc_match and desc_match.group(1) else ""

    ref_match = _ORIGINAL_REF_RE.search(text)
    return FigureDescription(
        title=title,
        description=description or NO_DESCRIPTION,
        original_ref=ref_match.group(1) if ref_match else NO_REFERENCE,
        snippet_id=snippet.id,
    )


def extract_figures(snippets: Iterable[ContextSnippet]) -> list[FigureDescription]:
    """All figure descriptions among ``snippets``, in snippet order."""
    figures: list[FigureDescription] = []
    for snippet in snippets:
        figure = parse_figure(snippet, len(figures))
        if figure is not None:
            figures.append(figure)
    return figures


__all__ = ["FIGURE_MARKER", "FigureDescription", "extract_figures", "has_figure", "parse_figure"]
