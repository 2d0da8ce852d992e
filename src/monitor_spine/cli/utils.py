"""
CLI utility helpers -- output formatting and settings loading.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from monitor_spine.core.errors import ConfigError
from monitor_spine.core.settings import MonitorSettings, get_settings

console = Console()
err_console = Console(stderr=True)


def load_settings(**overrides: Any) -> MonitorSettings:
    """Load settings, exiting with code 2 on invalid configuration."""
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        return get_settings(_force_reload=True, **overrides)
    except ConfigError as e:
        err_console.print(f"[bold red]Configuration error[/bold red]: {e.message}")
        raise typer.Exit(code=2) from e


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a mapping-like object as JSON or a two-column Rich table."""
    data = _to_dict(obj)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    table = Table(title=title or None, show_header=False, pad_edge=False)
    table.add_column("key", style="bold")
    table.add_column("value", overflow="fold")
    for key, value in data.items():
        table.add_row(str(key), json.dumps(value, default=str) if isinstance(value, dict | list) else str(value))
    console.print(table)
