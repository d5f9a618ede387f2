"""Configuration commands for qgen CLI.

This module implements the `qgen config` command group.

Subcommands:
- `qgen config show` - Display the effective config as a Rich table
- `qgen config path` - Show the default config file location
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
import yaml
from rich.table import Table

from ..helpers import DEFAULT_CONFIG_FILE, load_cli_config
from ..output import console

config_app = typer.Typer(
    name="config",
    help="Inspect qgen configuration.",
    no_args_is_help=True,
)


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    """Flatten nested config dicts into dotted keys."""
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{dotted}."))
        else:
            rows.append((dotted, value))
    return rows


@config_app.command()
def show(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a qgen YAML config file",
    ),
    as_yaml: bool = typer.Option(False, "--yaml", help="Print as YAML instead of a table"),
) -> None:
    """Show the effective configuration (file, defaults and environment)."""
    config = load_cli_config(config_file, console)
    data = config.model_dump(mode="json")

    if as_yaml:
        console.print(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
        return

    table = Table(title="qgen configuration", title_justify="left")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in _flatten(data):
        table.add_row(key, str(value))
    console.print(table)


@config_app.command()
def path() -> None:
    """Show the default config file location."""
    resolved = DEFAULT_CONFIG_FILE.expanduser()
    suffix = "" if resolved.exists() else " [dim](not created)[/dim]"
    console.print(f"{resolved}{suffix}")
