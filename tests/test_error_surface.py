"""Tests for qgen.jobs.errors.ErrorSurface."""

from __future__ import annotations

from qgen.jobs.errors import ErrorSurface


class TestErrorSurface:
    def test_starts_empty(self) -> None:
        surface = ErrorSurface()
        assert surface.message is None
        assert not surface

    def test_set_replaces(self) -> None:
        surface = ErrorSurface()
        surface.set("first")
        surface.set("second")
        assert surface.message == "second"
        assert surface.is_set

    def test_empty_message_ignored(self) -> None:
        surface = ErrorSurface()
        surface.set("kept")
        surface.set("")
        assert surface.message == "kept"

    def test_dismiss_returns_and_clears(self) -> None:
        surface = ErrorSurface()
        surface.set("Network down")
        assert surface.dismiss() == "Network down"
        assert surface.message is None
        assert surface.dismiss() is None

    def test_repr(self) -> None:
        surface = ErrorSurface()
        surface.set("x")
        assert repr(surface) == "ErrorSurface('x')"
