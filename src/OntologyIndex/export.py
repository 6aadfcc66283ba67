"""Projection of stored metadata rows into ``index.csv`` and ``index.jsonl``.

Both writers consume rows that are already ordered (the store yields them by
title) and write through a temporary sibling file that replaces the target in
one step, so readers never observe a half-written index.  Output is a pure
function of the rows: exporting twice without store writes in between yields
identical bytes.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, TextIO, Tuple

__all__ = ["CSV_HEADER", "EXPORT_COLUMNS", "write_index_csv", "write_index_jsonl"]

LOGGER = logging.getLogger(__name__)

# (column, CSV label) in export order
_EXPORT_LAYOUT: Tuple[Tuple[str, str], ...] = (
    ("ontology_title", "ontology title"),
    ("ontology_iri", "ontology iri"),
    ("summary", "summary"),
    ("authors", "authors"),
    ("contributors", "contributors"),
    ("license_information", "license information"),
    ("project_page", "project page"),
    ("source_page", "source page"),
    ("latest_json_ld_file", "latest json-ld file"),
    ("latest_n3_file", "latest n3 file"),
    ("latest_ntriples_file", "latest ntriples file"),
    ("latest_rdfxml_file", "latest rdf/xml file"),
    ("latest_turtle_file", "latest turtle file"),
    ("modified", "modified"),
    ("version", "version"),
    ("source_title", "source title"),
    ("source_url", "source url"),
)

EXPORT_COLUMNS: Tuple[str, ...] = tuple(column for column, _ in _EXPORT_LAYOUT)
CSV_HEADER: Tuple[str, ...] = tuple(label for _, label in _EXPORT_LAYOUT)


def _project(row: Mapping[str, Optional[str]]) -> Dict[str, str]:
    return {column: row.get(column) or "" for column in EXPORT_COLUMNS}


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


@contextmanager
def _atomic_writer(path: Path) -> Iterator[TextIO]:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            yield handle
        # mkstemp creates 0600 files; published indexes follow the umask.
        os.chmod(tmp_name, _default_file_mode())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_index_csv(rows: Iterable[Mapping[str, Optional[str]]], path: Path) -> int:
    """Write ``rows`` to ``path`` with every value double-quoted; returns the row count."""

    count = 0
    with _atomic_writer(path) as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for row in rows:
            projected = _project(row)
            writer.writerow([projected[column] for column in EXPORT_COLUMNS])
            count += 1
    LOGGER.info(f"Wrote {count} entries to {path}", extra={"stage": "export"})
    return count


def write_index_jsonl(rows: Iterable[Mapping[str, Optional[str]]], path: Path) -> int:
    """Write ``rows`` to ``path`` as JSON lines keyed by store column name."""

    count = 0
    with _atomic_writer(path) as handle:
        for row in rows:
            handle.write(json.dumps(_project(row), ensure_ascii=False))
            handle.write("\n")
            count += 1
    LOGGER.info(f"Wrote {count} entries to {path}", extra={"stage": "export"})
    return count
