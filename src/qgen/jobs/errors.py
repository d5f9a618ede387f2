"""Ephemeral, user-dismissable error message for one session.

Kept apart from the job record: a job's own ``error`` status and
``error_details`` are persisted state reported by the service, while the
surface holds transient problems (validation, transport) the user can
dismiss.
"""

from __future__ import annotations

from qgen.core.logging import get_logger

_logger = get_logger("session.errors")


class ErrorSurface:
    """Holds at most one error message."""

    def __init__(self) -> None:
        self._message: str | None = None

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def is_set(self) -> bool:
        return self._message is not None

    def set(self, message: str) -> None:
        """Replace the current message. Empty text is ignored."""
        if not message:
            return
        self._message = message
        _logger.debug("error_surface.set", message=message)

    def clear(self) -> None:
        self._message = None

    def dismiss(self) -> str | None:
        """Clear the message on user request and return what was shown."""
        message, self._message = self._message, None
        return message

    def __bool__(self) -> bool:
        return self.is_set

    def __repr__(self) -> str:
        return f"ErrorSurface({self._message!r})"
