"""Tests for qgen.jobs.figures: figure descriptions inside context snippets."""

from __future__ import annotations

from qgen.jobs.figures import NO_DESCRIPTION, NO_REFERENCE, extract_figures, has_figure, parse_figure
from qgen.jobs.models import ContextSnippet

FIGURE_TEXT = """### Figure 3: BFS traversal order
**Figure Description (Generated by Moondream):**
A graph with six nodes labelled A to F, visited level by level.
---
**Original Image Reference:** `figures/page4_img1.png`
"""


def _snippet(text: str, snippet_id: str = "s1") -> ContextSnippet:
    return ContextSnippet.model_validate({"id": snippet_id, "payload": {"text": text}})


class TestParseFigure:
    def test_full_block(self) -> None:
        figure = parse_figure(_snippet(FIGURE_TEXT))
        assert figure is not None
        assert figure.title == "Figure 3: BFS traversal order"
        assert figure.description == "A graph with six nodes labelled A to F, visited level by level."
        assert figure.original_ref == "figures/page4_img1.png"
        assert figure.snippet_id == "s1"

    def test_plain_snippet_has_no_figure(self) -> None:
        snippet = _snippet("BFS uses a queue.")
        assert not has_figure(snippet)
        assert parse_figure(snippet) is None

    def test_fallbacks(self) -> None:
        text = "**Figure Description (Generated by Moondream):** no separator here"
        figure = parse_figure(_snippet(text), index=1)
        assert figure is not None
        assert figure.title == "Image Description 2"
        assert figure.description == NO_DESCRIPTION
        assert figure.original_ref == NO_REFERENCE


class TestExtractFigures:
    def test_only_figure_snippets_numbered_in_order(self) -> None:
        untitled = "**Figure Description (Generated by Moondream):**\nA tree.\n---\n"
        snippets = [
            _snippet("Plain text.", "a"),
            _snippet(untitled, "b"),
            _snippet(FIGURE_TEXT, "c"),
            _snippet(untitled, "d"),
        ]
        figures = extract_figures(snippets)
        assert [f.snippet_id for f in figures] == ["b", "c", "d"]
        assert figures[0].title == "Image Description 1"
        assert figures[0].description == "A tree."
        assert figures[2].title == "Image Description 3"
