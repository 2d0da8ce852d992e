"""
Root Typer application for the monitor-spine CLI.

Commands
--------
run           Consume the record stream, serve /metrics, run retention.
sweep         Run retention sweeps once, in the foreground.
db init       Create the entity tables.
db tables     Row counts per entity table.
config show   Effective configuration.
"""

from __future__ import annotations

import typer
from typer import Typer

from monitor_spine import __version__
from monitor_spine.cli.config import app as config_app
from monitor_spine.cli.db import app as db_app
from monitor_spine.cli.utils import console, err_console, load_settings, output
from monitor_spine.core.logging import configure_logging

app = Typer(
    name="monitor-spine",
    help="monitor-spine -- materialize workflow-engine records into a queryable store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"monitor-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """monitor-spine CLI -- run the importer, sweep old data, manage the store."""


app.add_typer(db_app, name="db", help="Entity store operations.")
app.add_typer(config_app, name="config", help="Configuration inspection.")


# ── run ──────────────────────────────────────────────────────────────────


@app.command()
def run(
    retention: bool | None = typer.Option(
        None, "--retention/--no-retention", help="Override MONITOR_RETENTION_ENABLED"
    ),
    metrics: bool | None = typer.Option(None, "--metrics/--no-metrics", help="Override MONITOR_METRICS_ENABLED"),
    port: int | None = typer.Option(None, "--port", "-p", help="Override MONITOR_METRICS_PORT"),
) -> None:
    """Consume records until SIGINT/SIGTERM."""
    from monitor_spine.service import MonitorService

    settings = load_settings(retention_enabled=retention, metrics_enabled=metrics, metrics_port=port)
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    service = MonitorService.from_settings(settings)

    if not settings.metrics_enabled:
        service.run_forever()
        return

    import uvicorn

    from monitor_spine.api import create_app

    service.start()
    try:
        uvicorn.run(
            create_app(service),
            host=settings.metrics_host,
            port=settings.metrics_port,
            log_level=settings.log_level.lower(),
            access_log=False,
        )
    finally:
        service.stop()


# ── sweep ────────────────────────────────────────────────────────────────


@app.command()
def sweep(
    jitter: bool = typer.Option(True, "--jitter/--no-jitter", help="Wait the random start-up jitter first"),
    days: int | None = typer.Option(None, "--days", help="Override MONITOR_RETENTION_DAYS"),
    drain: bool = typer.Option(False, "--all", help="Repeat until no expired instance is left"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete expired process instances now, regardless of MONITOR_RETENTION_ENABLED."""
    from monitor_spine.core.errors import RetentionError
    from monitor_spine.core.orm import create_monitor_engine, init_schema, monitor_session_factory
    from monitor_spine.core.retention import RetentionSweeper

    settings = load_settings(retention_days=days)
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    engine = create_monitor_engine(settings.database_url, echo=settings.database_echo)
    try:
        init_schema(engine)
        sweeper = RetentionSweeper.from_settings(settings, monitor_session_factory(engine))
        sweeper.enabled = True

        total = 0
        result = sweeper.run_cycle(jitter=jitter)
        total += result.process_instances_deleted
        while drain and len(result.keys) == sweeper.batch_size:
            result = sweeper.run_cycle(jitter=False)
            total += result.process_instances_deleted
    except RetentionError as e:
        err_console.print(f"[bold red]Sweep failed[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    finally:
        engine.dispose()

    summary = result.to_dict()
    summary["process_instances_deleted_total"] = total
    output(summary, as_json=json_out, title="Retention Sweep")
    if not json_out and total == 0:
        console.print("[dim]Nothing expired.[/dim]")


if __name__ == "__main__":
    app()
