"""Merge the hand-maintained metadata CSV into the store.

The CSV lists ontologies the registries miss or describe poorly.  Unknown
IRIs are inserted; known ones are supplemented through the fill-only
:meth:`~OntologyIndex.store.MetadataStore.update_entry`, so manual data never
overwrites what an extractor already found.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .errors import ConfigurationError
from .records import MetadataRecord
from .settings import SourcesConfiguration
from .store import MetadataStore

__all__ = ["MANUAL_COLUMNS", "ManualOverrideMerger", "MergeSummary"]

LOGGER = logging.getLogger(__name__)

SOURCE_TITLE = "Manually maintained"
SOURCE_URL = (
    "https://github.com/k00ni/govi/blob/master/manually-maintained-metadata-about-ontologies.csv"
)

# Fixed column positions of the CSV.
MANUAL_COLUMNS: Tuple[str, ...] = (
    "ontology_title",
    "ontology_iri",
    "summary",
    "authors",
    "contributors",
    "license_information",
    "project_page",
    "source_page",
    "latest_json_ld_file",
    "latest_n3_file",
    "latest_ntriples_file",
    "latest_rdfxml_file",
    "latest_turtle_file",
    "modified",
    "version",
)


@dataclass
class MergeSummary:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged


class ManualOverrideMerger:
    """Reconcile the manual CSV against the store."""

    def __init__(self, store: MetadataStore, config: Optional[SourcesConfiguration] = None):
        self.store = store
        self.config = config or SourcesConfiguration()

    def get_prepared_index_entry(self) -> MetadataRecord:
        return MetadataRecord(source_title=SOURCE_TITLE, source_url=SOURCE_URL)

    def read_rows(self, csv_path: Path) -> Iterator[List[str]]:
        """Yield data rows padded to :data:`MANUAL_COLUMNS`; the header and blank rows are skipped."""

        with Path(csv_path).open("r", encoding="utf-8", newline="") as handle:
            reader = csv.reader(handle)
            next(reader, None)
            for row in reader:
                if not any(cell.strip() for cell in row):
                    continue
                yield (row + [""] * len(MANUAL_COLUMNS))[: len(MANUAL_COLUMNS)]

    def build_record(self, row: List[str]) -> MetadataRecord:
        record = self.get_prepared_index_entry()
        for column, value in zip(MANUAL_COLUMNS, row):
            if value.strip():
                setattr(record, column, value)
        return record

    def run(self, csv_path: Optional[Path] = None) -> MergeSummary:
        """Merge every row of ``csv_path`` (default: the configured manual CSV).

        Raises:
            ConfigurationError: If the CSV file does not exist.
            ValidationError: If a new row lacks title, IRI, or file links.
        """

        path = Path(csv_path if csv_path is not None else self.config.manual_csv_path)
        if not path.exists():
            raise ConfigurationError(f"Manually maintained metadata file not found: {path}")

        summary = MergeSummary()
        for row in self.read_rows(path):
            record = self.build_record(row)
            iri = record.ontology_iri or ""
            extra = {"stage": "manual", "ontology_iri": iri}
            if not self.store.has_entry(iri):
                self.store.store_entries([record])
                summary.inserted += 1
                LOGGER.info(f"{iri} added from manual metadata", extra=extra)
                continue

            changed = self.store.update_entry(record)
            if changed:
                summary.updated += 1
                LOGGER.info(f"{iri} supplemented with {', '.join(changed)}", extra=extra)
            else:
                summary.unchanged += 1
                LOGGER.debug(f"{iri} is already in index", extra=extra)

        LOGGER.info(
            f"Manual metadata merged: {summary.inserted} inserted, "
            f"{summary.updated} updated, {summary.unchanged} unchanged",
            extra={"stage": "manual"},
        )
        return summary
