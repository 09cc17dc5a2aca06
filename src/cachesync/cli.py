"""
Typer application for the ``cache-sync`` command.

Commands:
    run    -- run one synchronization cycle and exit with its status
    ping   -- check that the key-value store answers
    units  -- list the unit catalog and which units are enabled

Exit codes:
    0  cycle completed (unit failures count only with
       ``CACHE_SYNC_FAIL_ON_PARTIAL_FAILURE=true``)
    1  configuration or source URL invalid, store unreachable, deadline exceeded,
       or dispatch failed
"""

from __future__ import annotations

import json

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cachesync import __version__
from cachesync.core import factory
from cachesync.core.errors import (
    CacheSyncError,
    ConfigError,
    CycleDeadlineExceeded,
    StoreConnectionError,
    is_fatal,
)
from cachesync.core.logging import configure_logging, get_logger
from cachesync.core.settings import CacheSyncSettings, get_settings
from cachesync.source.extraction import ExtractionLayer
from cachesync.source.reader import SourceReader
from cachesync.store.adapter import KeyValueStore
from cachesync.sync.catalog import UNITS
from cachesync.sync.orchestrator import Orchestrator
from cachesync.sync.results import CycleSummary

app = typer.Typer(
    name="cache-sync",
    help="cache-sync: refresh the metadata cache from the relational source.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cache-sync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cache-sync CLI: synchronize metadata caches."""


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_settings() -> CacheSyncSettings:
    try:
        return get_settings()
    except ValidationError as e:
        error = ConfigError(f"Invalid configuration: {e}", cause=e)
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}")
        raise typer.Exit(code=1) from e


def _connect_store(settings: CacheSyncSettings) -> KeyValueStore:
    store = KeyValueStore.from_settings(settings)
    try:
        return store.connect()
    except StoreConnectionError as e:
        store.close()
        logger.error("startup_failed", **e.to_dict())
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {escape(e.message)}")
        raise typer.Exit(code=1) from e


def _create_engine(settings: CacheSyncSettings) -> Engine:
    try:
        return factory.create_database_engine(settings)
    except (SQLAlchemyError, ImportError) as e:
        raise ConfigError(f"Cannot create source engine: {e}", cause=e) from e


def _print_summary(summary: CycleSummary, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(json.dumps(summary.to_dict(), default=str))
        return

    table = Table(title=f"Cycle {summary.cycle_id}: {summary.status.value}", pad_edge=False)
    table.add_column("unit")
    table.add_column("records", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("status")
    table.add_column("error", overflow="fold")
    for result in summary.results:
        status = "[green]ok[/green]" if result.success else "[red]failed[/red]"
        table.add_row(
            result.name,
            str(result.record_count),
            str(result.duration_ms),
            status,
            escape(result.error_message or ""),
        )
    console.print(table)
    console.print(
        f"Total tasks: {summary.total}, Success: {summary.successful}, Failed: {summary.failed}, "
        f"Records: {summary.total_records}"
    )


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run(
    json_out: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """Run one synchronization cycle."""
    settings = _load_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    store = _connect_store(settings)
    engine: Engine | None = None
    try:
        engine = _create_engine(settings)
        extraction = ExtractionLayer(SourceReader(engine, batch_size=settings.batch_size))
        summary = Orchestrator(settings, extraction, store).run_cycle()
    except CacheSyncError as e:
        if not is_fatal(e):
            raise
        logger.error("cycle_failed", exc_info=True, **e.to_dict())
        if isinstance(e, CycleDeadlineExceeded) and e.summary is not None:
            _print_summary(e.summary, as_json=json_out)
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {escape(e.message)}")
        raise typer.Exit(code=1) from e
    finally:
        store.close()
        if engine is not None:
            engine.dispose()

    _print_summary(summary, as_json=json_out)
    raise typer.Exit(code=summary.exit_code(settings.fail_on_partial_failure))


@app.command("ping")
def ping() -> None:
    """Check that the key-value store answers PING."""
    settings = _load_settings()
    store = _connect_store(settings)
    store.close()
    console.print(f"[green]PONG[/green] {settings.redis_host}:{settings.redis_port} ({settings.topology.value})")


@app.command("units")
def units(
    json_out: bool = typer.Option(False, "--json", help="Print the catalog as JSON."),
) -> None:
    """List synchronization units."""
    settings = _load_settings()
    groups = settings.enabled_groups()
    rows = [
        {
            "name": unit.name,
            "shape": unit.shape.value,
            "group": unit.group or "",
            "enabled": unit.enabled(groups),
        }
        for unit in UNITS
    ]

    if json_out:
        console.print_json(json.dumps(rows))
        return

    table = Table(title="Synchronization units", pad_edge=False)
    for column in ("name", "shape", "group", "enabled"):
        table.add_column(column)
    for row in rows:
        table.add_row(row["name"], row["shape"], row["group"], "yes" if row["enabled"] else "no")
    console.print(table)


if __name__ == "__main__":
    app()
