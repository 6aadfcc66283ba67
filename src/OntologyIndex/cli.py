# === NAVMAP v1 ===
# {
#   "module": "OntologyIndex.cli",
#   "purpose": "Typer command line for harvesting, merging and exporting the ontology index",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "renew", "name": "renew", "anchor": "function-renew", "kind": "function"},
#     {"id": "merge-manual", "name": "merge_manual", "anchor": "function-merge-manual", "kind": "function"},
#     {"id": "export", "name": "export", "anchor": "function-export", "kind": "function"},
#     {"id": "show", "name": "show", "anchor": "function-show", "kind": "function"},
#     {"id": "extractors", "name": "list_extractors", "anchor": "function-list-extractors", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line entry point ``ontoindex``.

Example:
    $ ontoindex renew --fresh
    $ ontoindex --log-level DEBUG renew --only lov --no-manual
    $ ontoindex export --output-dir ./out
    $ ontoindex show http://purl.obolibrary.org/obo/go.owl
"""

from __future__ import annotations

import contextlib
import json
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .errors import ConfigurationError, HarvestError
from .extractors import EXTRACTORS
from .logging_utils import setup_logging
from .manual import ManualOverrideMerger
from .pipeline import export_index, run_harvest
from .settings import HarvestConfig, load_config
from .store import MetadataStore

_console = Console()


class CliContext:
    """Per-invocation state shared by the commands."""

    def __init__(self, config: HarvestConfig):
        self.config = config
        self.console = _console

    def open_store(self) -> MetadataStore:
        """Return a store for the configured database; use it as a context manager."""

        return MetadataStore(self.config.database)


app = typer.Typer(
    name="ontoindex",
    help="Harvest ontology metadata from public registries into a de-duplicated index",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"ontoindex {__version__}")
        raise typer.Exit(0)


@contextlib.contextmanager
def _fail_on_harvest_error() -> Iterator[None]:
    try:
        yield
    except HarvestError as exc:
        _console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc


@app.callback(invoke_without_command=False)
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="ONTOINDEX_CONFIG",
        help="Path to a YAML configuration file",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Harvest ontology metadata and maintain index.csv."""

    global _context

    with _fail_on_harvest_error():
        resolved = load_config(config)
        if log_level is not None:
            try:
                resolved.logging.level = log_level
            except ValueError as exc:
                raise ConfigurationError(f"Invalid log level {log_level!r}") from exc

    setup_logging(
        level=resolved.logging.level,
        retention_days=resolved.logging.retention_days,
        max_log_size_mb=resolved.logging.max_log_size_mb,
        log_dir=resolved.logging.log_dir,
    )
    _context = CliContext(resolved)


def _select_extractors(only: List[str], skip: List[str], configured: List[str]) -> List[str]:
    unknown = [name for name in [*only, *skip] if name not in EXTRACTORS]
    if unknown:
        raise ConfigurationError(f"Unknown extractor(s) {unknown}; expected {list(EXTRACTORS)}")
    selected = [name for name in configured if not only or name in only]
    return [name for name in selected if name not in skip]


@app.command()
def renew(
    fresh: bool = typer.Option(False, "--fresh", help="Delete the previous store before running"),
    only: List[str] = typer.Option([], "--only", help="Run only this extractor (repeatable)"),
    skip: List[str] = typer.Option([], "--skip", help="Do not run this extractor (repeatable)"),
    no_manual: bool = typer.Option(
        False, "--no-manual", help="Do not merge the manually maintained CSV"
    ),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Where to write the index"),
    db_path: Optional[Path] = typer.Option(None, "--db-path", help="DuckDB file of the store"),
) -> None:
    """Run every extractor, merge manual metadata and rewrite the index."""

    ctx = get_context()
    config = ctx.config.model_copy(deep=True)

    with _fail_on_harvest_error():
        if output_dir is not None:
            config.output_dir = output_dir
        if db_path is not None:
            config.database.db_path = db_path
        names = _select_extractors(only, skip, config.extractors)
        if fresh:
            MetadataStore.reset(config.database.resolved_path())
        report = run_harvest(config, extractors=names, manual=not no_manual)

    table = Table(title="Harvest summary")
    table.add_column("Extractor")
    table.add_column("Stored", justify="right")
    table.add_column("Skipped", justify="right")
    for name, stats in report.extractors.items():
        table.add_row(name, str(stats.stored), str(stats.skipped))
    ctx.console.print(table)
    if report.manual is not None:
        ctx.console.print(
            f"Manual metadata: {report.manual.inserted} inserted, {report.manual.updated} updated"
        )
    ctx.console.print(f"[green]{report.total_entries} entries in index[/green]")


@app.command("merge-manual")
def merge_manual(
    csv_path: Optional[Path] = typer.Argument(
        None, help="Manual metadata CSV; defaults to the configured file"
    ),
) -> None:
    """Merge the manually maintained metadata CSV into the store."""

    ctx = get_context()
    with _fail_on_harvest_error():
        with ctx.open_store() as store:
            summary = ManualOverrideMerger(store, ctx.config.sources).run(csv_path)
    ctx.console.print(
        f"[green]{summary.inserted} inserted, {summary.updated} updated, "
        f"{summary.unchanged} unchanged[/green]"
    )


@app.command()
def export(
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Target directory"),
    jsonl: Optional[bool] = typer.Option(None, "--jsonl/--no-jsonl", help="Also write index.jsonl"),
) -> None:
    """Write index.csv (and index.jsonl) from the current store."""

    ctx = get_context()
    target = output_dir if output_dir is not None else ctx.config.output_dir
    write_jsonl = ctx.config.write_jsonl if jsonl is None else jsonl
    with _fail_on_harvest_error():
        with ctx.open_store() as store:
            written = export_index(store, target, write_jsonl=write_jsonl)
    for path in written.values():
        ctx.console.print(f"[green]Wrote {path}[/green]")


@app.command()
def show(iri: str = typer.Argument(..., help="Ontology IRI (case-insensitive)")) -> None:
    """Print the stored row of one ontology as JSON."""

    ctx = get_context()
    with _fail_on_harvest_error():
        with ctx.open_store() as store:
            row = store.get_entry_data_as_array(iri)
    if row is None:
        ctx.console.print(f"[red]No entry stored for {iri}[/red]")
        raise typer.Exit(1)
    typer.echo(json.dumps(row, indent=2, ensure_ascii=False))


@app.command("extractors")
def list_extractors() -> None:
    """List registered extractors in run order."""

    for name, extractor_cls in EXTRACTORS.items():
        typer.echo(f"{name}\t{extractor_cls.SOURCE_TITLE}")


__all__ = ["app", "CliContext", "get_context", "main"]
