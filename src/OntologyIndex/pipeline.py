"""Orchestration of one harvesting run.

Extractors run one after another in the configured order, then the manual
metadata is merged in and the index files are written.  Transient failures
while processing one ontology are absorbed by the extractor, which skips it.
Anything that reaches this module is fatal: the run stops, the exception propagates
to the caller, and rows stored so far stay in the DuckDB file for the next
run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence

from .extractors import ExtractorStats, build_extractor
from .graph import RdfParser
from .manual import ManualOverrideMerger, MergeSummary
from .net import HarvestCache
from .settings import HarvestConfig
from .store import MetadataStore

__all__ = ["HarvestReport", "export_index", "run_harvest"]

LOGGER = logging.getLogger(__name__)

INDEX_CSV = "index.csv"
INDEX_JSONL = "index.jsonl"


@dataclass
class HarvestReport:
    """Outcome of :func:`run_harvest`."""

    extractors: Dict[str, ExtractorStats] = field(default_factory=dict)
    manual: Optional[MergeSummary] = None
    total_entries: int = 0
    csv_path: Optional[Path] = None
    jsonl_path: Optional[Path] = None
    duration_sec: float = 0.0

    @property
    def stored(self) -> int:
        return sum(stats.stored for stats in self.extractors.values())

    @property
    def skipped(self) -> int:
        return sum(stats.skipped for stats in self.extractors.values())


def export_index(
    store: MetadataStore, output_dir: Path, *, write_jsonl: bool = True
) -> Dict[str, Path]:
    """Write ``index.csv`` (and optionally ``index.jsonl``) into ``output_dir``."""

    output_dir = Path(output_dir)
    written = {"csv": output_dir / INDEX_CSV}
    store.write_index_csv(written["csv"])
    if write_jsonl:
        written["jsonl"] = output_dir / INDEX_JSONL
        store.write_index_jsonl(written["jsonl"])
    return written


def run_harvest(
    config: HarvestConfig,
    *,
    store: Optional[MetadataStore] = None,
    cache: Optional[HarvestCache] = None,
    extractors: Optional[Sequence[str]] = None,
    manual: bool = True,
    export: bool = True,
    strategies: Optional[Sequence[RdfParser]] = None,
) -> HarvestReport:
    """Run extractors, merge manual metadata, and export the index.

    Args:
        config: Settings for the run.
        store: Open store to write into; a store for ``config.database`` is
            opened (and closed afterwards) when omitted.
        cache: HTTP/file cache shared by all extractors; built from
            ``config.http`` when omitted.
        extractors: Extractor names in run order; defaults to ``config.extractors``.
        manual: Merge the manually maintained CSV after extraction.
        export: Write the index files into ``config.output_dir``.
        strategies: RDF parser strategies handed to every extractor.

    Returns:
        HarvestReport: Per-extractor counters, merge summary, and output paths.

    Raises:
        HarvestError: Any fatal failure; the run stops at the first one.
    """

    started = time.monotonic()
    owns_store = store is None
    owns_cache = cache is None
    active_store = store if store is not None else MetadataStore(config.database)
    active_cache = cache if cache is not None else HarvestCache(config.http)
    report = HarvestReport()

    try:
        if owns_store:
            active_store.bootstrap()

        for name in extractors if extractors is not None else config.extractors:
            LOGGER.info(f"Running extractor {name}", extra={"stage": "extract", "extractor": name})
            extractor = build_extractor(
                name, active_store, active_cache, config, strategies=strategies
            )
            extractor.run()
            report.extractors[name] = extractor.stats
            LOGGER.info(
                f"{name} finished: {extractor.stats.stored} stored, "
                f"{extractor.stats.skipped} skipped",
                extra={"stage": "extract", "extractor": name},
            )

        if manual:
            report.manual = ManualOverrideMerger(active_store, config.sources).run()

        if export:
            written = export_index(
                active_store, config.output_dir, write_jsonl=config.write_jsonl
            )
            report.csv_path = written["csv"]
            report.jsonl_path = written.get("jsonl")

        report.total_entries = active_store.count()
    finally:
        if owns_cache:
            active_cache.close()
        if owns_store:
            active_store.close()

    report.duration_sec = time.monotonic() - started
    LOGGER.info(
        f"Harvest finished with {report.total_entries} entries in {report.duration_sec:.1f}s",
        extra={"stage": "pipeline"},
    )
    return report
