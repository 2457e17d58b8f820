"""
Sonic Ingest - CLI Entry Point
-------------------------------
Exposes Typer commands for the ingest channel.

Usage:
    python -m sonic_ingest.main push messages user:1 conv:42 "Hello there"
    python -m sonic_ingest.main bulk-push messages user:1 records.jsonl --parallel 8
    python -m sonic_ingest.main bulk-pop messages user:1 records.json
    python -m sonic_ingest.main count messages user:1
    python -m sonic_ingest.main flush messages user:1 conv:42
    python -m sonic_ingest.main ping
"""
from __future__ import annotations

import sys

# Windows cp1252 terminal fix: force UTF-8 so non-ASCII payloads do not
# crash the Rich console renderer.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from typing import Optional

import orjson
import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from sonic_ingest.config import DEFAULT_CONFIG_PATH, ingest_parallelism, load_config, sonic_settings
from sonic_ingest.connection.errors import SonicError
from sonic_ingest.connection.transport import connection_factory
from sonic_ingest.ingest.ingester import Ingester
from sonic_ingest.schemas import RecordError
from sonic_ingest.utils.helpers import load_records, truncate_text
from sonic_ingest.utils.logger import setup_logger

app = typer.Typer(
    name="sonic-ingest",
    help="Sonic ingest channel client - push, pop, flush and count index data",
    add_completion=False,
)
console = Console()

CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to client config YAML"
)


# --- Helpers ------------------------------------------------------------------

def _bootstrap(config_path: str) -> tuple[dict, Ingester]:
    cfg = load_config(config_path)
    log_cfg = cfg.get("logging", {})
    setup_logger(
        log_level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file", "logs/ingest.log"),
    )
    settings = sonic_settings(cfg)
    return cfg, Ingester(settings, connection_factory(settings))


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _run(ingester: Ingester, action, *args):
    """Run one Ingester call on the control connection, then close it.

    Client errors (including a failed connect) become exit code 1.
    """
    try:
        return action(*args)
    except (SonicError, ValueError) as exc:
        _fail(f"[FAIL] {exc}")
    finally:
        ingester.close()


def _print_errors(errors: list[RecordError]) -> None:
    table = Table(
        "Object", "Error", "Detail",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold dim",
    )
    for err in errors:
        table.add_row(truncate_text(err.object, 40), err.error.value, truncate_text(err.detail or ""))
    console.print(table)


def _bulk(cfg: dict, ingester: Ingester, mode: str, collection: str, bucket: str,
          file: str, parallel: Optional[int]) -> None:
    try:
        records = load_records(file)
    except (OSError, orjson.JSONDecodeError, ValidationError, TypeError) as exc:
        _fail(f"Cannot load records from {file}: {exc}")

    workers = parallel if parallel is not None else ingest_parallelism(cfg)
    method = ingester.bulk_push if mode == "push" else ingester.bulk_pop

    try:
        with console.status(f"[cyan]Bulk {mode}: {len(records)} record(s)...[/cyan]"):
            errors = method(collection, bucket, workers, records)
    except ValueError as exc:
        _fail(f"[FAIL] {exc}")

    summary = ingester.dispatcher.last_summary
    console.print(
        f"[green][OK] {summary.succeeded} record(s)[/green]  "
        f"[red]{summary.failed} failed[/red]  "
        f"[dim]| {summary.partitions} worker(s) | {summary.elapsed_s:.2f}s[/dim]"
    )
    if errors:
        _print_errors(errors)
        raise typer.Exit(1)


# --- Commands -----------------------------------------------------------------

@app.command()
def push(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument(..., help="Bucket name"),
    object: str = typer.Argument(..., help="Object identifier"),
    text: str = typer.Argument(..., help="Text to index"),
    config: str = CONFIG_OPTION,
) -> None:
    """Index TEXT under COLLECTION/BUCKET/OBJECT."""
    _, ingester = _bootstrap(config)
    _run(ingester, ingester.push, collection, bucket, object, text)
    console.print(f"[green][OK] pushed {object}[/green]")


@app.command()
def pop(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument(..., help="Bucket name"),
    object: str = typer.Argument(..., help="Object identifier"),
    text: str = typer.Argument(..., help="Text to remove"),
    config: str = CONFIG_OPTION,
) -> None:
    """Remove TEXT from COLLECTION/BUCKET/OBJECT."""
    _, ingester = _bootstrap(config)
    _run(ingester, ingester.pop, collection, bucket, object, text)
    console.print(f"[green][OK] popped {object}[/green]")


@app.command("bulk-push")
def bulk_push(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument(..., help="Bucket name"),
    file: str = typer.Argument(..., help="JSON array or JSON-lines file of {object, text}"),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-p", help="Worker connections (default: ingest.parallelism)"
    ),
    config: str = CONFIG_OPTION,
) -> None:
    """
    Push every record in FILE using parallel connections.

    \b
    Exit code 1 when any record failed; failed objects are listed.
    """
    cfg, ingester = _bootstrap(config)
    _bulk(cfg, ingester, "push", collection, bucket, file, parallel)


@app.command("bulk-pop")
def bulk_pop(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument(..., help="Bucket name"),
    file: str = typer.Argument(..., help="JSON array or JSON-lines file of {object, text}"),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-p", help="Worker connections (default: ingest.parallelism)"
    ),
    config: str = CONFIG_OPTION,
) -> None:
    """Pop every record in FILE using parallel connections."""
    cfg, ingester = _bootstrap(config)
    _bulk(cfg, ingester, "pop", collection, bucket, file, parallel)


@app.command()
def count(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument("", help="Bucket name (optional)"),
    object: str = typer.Argument("", help="Object identifier (optional, needs BUCKET)"),
    config: str = CONFIG_OPTION,
) -> None:
    """Count indexed terms in a collection, bucket or object."""
    _, ingester = _bootstrap(config)
    result = _run(ingester, ingester.count, collection, bucket, object)
    console.print(result)


@app.command()
def flush(
    collection: str = typer.Argument(..., help="Collection name"),
    bucket: str = typer.Argument("", help="Bucket name (optional)"),
    object: str = typer.Argument("", help="Object identifier (optional, needs BUCKET)"),
    config: str = CONFIG_OPTION,
) -> None:
    """Flush a whole collection, one bucket, or one object."""
    _, ingester = _bootstrap(config)
    if bucket and object:
        _run(ingester, ingester.flush_object, collection, bucket, object)
    elif bucket:
        _run(ingester, ingester.flush_bucket, collection, bucket)
    else:
        _run(ingester, ingester.flush_collection, collection)
    target = "/".join(p for p in (collection, bucket, object) if p)
    console.print(f"[green][OK] flushed {target}[/green]")


@app.command()
def ping(config: str = CONFIG_OPTION) -> None:
    """Check that the server answers on the ingest channel."""
    _, ingester = _bootstrap(config)

    def check() -> None:
        ingester.ping()
        ingester.quit()

    _run(ingester, check)
    console.print("[green][OK] PONG[/green]")


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
