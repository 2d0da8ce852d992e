"""
CLI: ``monitor-spine config`` -- configuration inspection.
"""

from __future__ import annotations

import typer

from monitor_spine.cli.utils import console, load_settings, output

app = typer.Typer(no_args_is_help=True)

_SECRET_HINTS = ("password", "secret", "token")


def _redact(key: str, value: object) -> object:
    if isinstance(value, str) and "://" in value and "@" in value:
        scheme, rest = value.split("://", 1)
        return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"
    if any(hint in key for hint in _SECRET_HINTS):
        return "***"
    return value


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show the effective configuration (MONITOR_* environment and .env)."""
    settings = load_settings()
    values = {key: _redact(key, value) for key, value in sorted(settings.model_dump().items())}

    if format == "env":
        for key, value in values.items():
            console.print(f"MONITOR_{key.upper()}={value}", highlight=False)
        return

    output(values, as_json=format == "json", title="monitor-spine settings")


@app.command("validate")
def validate_config() -> None:
    """Validate configuration; exits non-zero when invalid."""
    settings = load_settings()
    console.print("[green]Configuration valid[/green]")
    if settings.retention_enabled and settings.retention_days == 0:
        console.print("[yellow]Warning:[/yellow] retention_days=0 expires every process instance")
