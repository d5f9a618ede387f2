"""qgen CLI commands.

Each module holds one command (or command group); they are registered with
the Typer app in ``qgen.cli``.
"""

from .actions import finalize, regenerate
from .config_cmd import config_app
from .generate import generate
from .status import status

__all__ = [
    "config_app",
    "finalize",
    "generate",
    "regenerate",
    "status",
]
