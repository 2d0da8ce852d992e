"""
CLI: ``monitor-spine db`` -- entity store management.
"""

from __future__ import annotations

import typer

from monitor_spine.cli.utils import console, load_settings, output

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Override MONITOR_DATABASE_URL"),
) -> None:
    """Create all entity tables that do not exist yet."""
    from monitor_spine.core.orm import create_monitor_engine, init_schema

    settings = load_settings(database_url=database_url)
    engine = create_monitor_engine(settings.database_url, echo=settings.database_echo)
    try:
        init_schema(engine)
    finally:
        engine.dispose()
    console.print(f"[green]Schema ready[/green] ({engine.url.render_as_string(hide_password=True)})")


@app.command()
def tables(
    database_url: str | None = typer.Option(None, "--database-url", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show row counts for all entity tables."""
    from monitor_spine.core.orm import MonitorBase, create_monitor_engine, init_schema, monitor_session_factory
    from monitor_spine.core.repositories import EntityStore

    settings = load_settings(database_url=database_url)
    engine = create_monitor_engine(settings.database_url)
    try:
        init_schema(engine)
        factory = monitor_session_factory(engine)
        with factory() as session:
            counts = {
                mapper.class_.__tablename__: EntityStore(session, mapper.class_).count()
                for mapper in sorted(MonitorBase.registry.mappers, key=lambda m: m.class_.__tablename__)
            }
    finally:
        engine.dispose()
    output(counts, as_json=json_out, title="Table Counts")
