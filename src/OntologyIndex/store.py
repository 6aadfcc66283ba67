# === NAVMAP v1 ===
# {
#   "module": "OntologyIndex.store",
#   "purpose": "DuckDB-backed temporary index of ontology metadata records",
#   "sections": [
#     {"id": "migrations", "name": "Schema & Migrations", "anchor": "MIG", "kind": "constants"},
#     {"id": "metadatastore", "name": "MetadataStore", "anchor": "class-metadatastore", "kind": "class"},
#     {"id": "queries", "name": "Query Facades", "anchor": "QRY", "kind": "api"},
#     {"id": "export", "name": "Index Export", "anchor": "EXP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""DuckDB-backed store holding one row per known ontology.

The store is the only component that persists anything.  Extractors ask it
whether an ontology is already known before doing any expensive work, submit
new records through :meth:`MetadataStore.store_entries`, and supplement rows
through :meth:`MetadataStore.update_entry`.  Two rules hold for every row:

* identity is the lower-cased IRI (``iri_key``), so differently-cased IRIs
  collapse onto the first stored row;
* a populated column is never overwritten; updates only fill empty columns.

Usage::

    with MetadataStore(DatabaseConfiguration(db_path=path)) as store:
        store.store_entries([record])
        store.write_index_csv(Path("index.csv"))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import duckdb

from .errors import DuplicateKeyError, NotFoundError, StorageError, ValidationError
from .export import write_index_csv, write_index_jsonl
from .records import STORE_COLUMNS, UPDATABLE_FIELDS, MetadataRecord, is_empty, normalize_iri
from .settings import DatabaseConfiguration

__all__ = ["MetadataStore"]

logger = logging.getLogger(__name__)


# ============================================================================
# Schema & Migrations
# ============================================================================


_MIGRATIONS: List[Tuple[str, str]] = [
    (
        "0001_init",
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version TEXT PRIMARY KEY,
            applied_at TIMESTAMP NOT NULL DEFAULT now()
        );

        CREATE SEQUENCE IF NOT EXISTS entry_id_seq START 1;

        CREATE TABLE IF NOT EXISTS entry (
            id BIGINT PRIMARY KEY DEFAULT nextval('entry_id_seq'),
            iri_key TEXT NOT NULL UNIQUE,
            ontology_iri TEXT NOT NULL UNIQUE,
            ontology_title TEXT NOT NULL,
            summary TEXT,
            license_information TEXT,
            authors TEXT,
            contributors TEXT,
            project_page TEXT,
            source_page TEXT,
            latest_json_ld_file TEXT,
            latest_n3_file TEXT,
            latest_ntriples_file TEXT,
            latest_rdfxml_file TEXT,
            latest_turtle_file TEXT,
            modified TEXT,
            version TEXT,
            source_title TEXT NOT NULL,
            source_url TEXT NOT NULL
        );

        INSERT INTO schema_version (version) VALUES ('0001_init');
        """,
    ),
]

_COLUMN_LIST = ", ".join(STORE_COLUMNS)
_INSERT_SQL = (
    f"INSERT INTO entry (iri_key, {_COLUMN_LIST}) "
    f"VALUES ({', '.join('?' for _ in range(len(STORE_COLUMNS) + 1))})"
)
_SELECT_BY_KEY_SQL = f"SELECT {_COLUMN_LIST} FROM entry WHERE iri_key = ?"
_SELECT_ORDERED_SQL = f"SELECT {_COLUMN_LIST} FROM entry ORDER BY ontology_title ASC, id ASC"


class MetadataStore:
    """Persistent keyed table of ontology metadata with fill-only updates.

    Usage::

        store = MetadataStore(config)
        store.bootstrap()
        try:
            ...
        finally:
            store.close()
    """

    def __init__(self, config: Optional[DatabaseConfiguration] = None):
        self.config = config or DatabaseConfiguration()
        self._db_path = self.config.resolved_path()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    @staticmethod
    def reset(db_path: Path) -> None:
        """Remove a previous database file (and its WAL) so the next run starts fresh."""

        for candidate in (Path(db_path), Path(str(db_path) + ".wal")):
            if candidate.exists():
                logger.info(f"Removing previous store file {candidate}", extra={"stage": "store"})
                candidate.unlink()

    def bootstrap(self) -> None:
        """Open the database file and apply pending migrations."""

        db_path = self._db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Opening DuckDB at {db_path} (read_only={self.config.readonly})")

        config_dict: Dict[str, Any] = {}
        if self.config.threads is not None:
            config_dict["threads"] = self.config.threads
        if self.config.memory_limit is not None:
            config_dict["memory_limit"] = self.config.memory_limit

        try:
            self._connection = duckdb.connect(
                str(db_path),
                read_only=self.config.readonly,
                config=config_dict,
            )
            if not self.config.readonly:
                self._apply_migrations()
        except duckdb.Error as exc:
            raise StorageError(f"Could not open metadata store at {db_path}: {exc}") from exc

    def _apply_migrations(self) -> None:
        """Apply migrations newer than the recorded schema version."""

        assert self._connection is not None
        try:
            result = self._connection.execute(
                "SELECT version FROM schema_version ORDER BY applied_at DESC, version DESC LIMIT 1"
            ).fetchall()
            current_version = result[0][0] if result else None
        except duckdb.CatalogException:
            current_version = None

        for migration_name, migration_sql in _MIGRATIONS:
            if current_version is None or migration_name > current_version:
                logger.info(f"Applying migration: {migration_name}")
                self._connection.execute(migration_sql)

    def close(self) -> None:
        """Close the database connection."""

        if self._connection:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> MetadataStore:
        self.bootstrap()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise StorageError("Metadata store is not open; call bootstrap() first")
        return self._connection

    # ========================================================================
    # Query Facades
    # ========================================================================

    def has_entry(self, iri: str) -> bool:
        """Return whether an ontology with ``iri`` (compared case-insensitively) is stored."""

        try:
            row = self.connection.execute(
                "SELECT 1 FROM entry WHERE iri_key = ? LIMIT 1", [normalize_iri(iri)]
            ).fetchone()
        except duckdb.Error as exc:
            raise StorageError(f"Lookup of {iri} failed: {exc}") from exc
        return row is not None

    def get_entry_data_as_array(self, iri: str) -> Optional[Dict[str, Optional[str]]]:
        """Return the stored row for ``iri`` keyed by column name, or ``None``."""

        try:
            row = self.connection.execute(_SELECT_BY_KEY_SQL, [normalize_iri(iri)]).fetchone()
        except duckdb.Error as exc:
            raise StorageError(f"Lookup of {iri} failed: {exc}") from exc
        if row is None:
            return None
        return dict(zip(STORE_COLUMNS, row))

    def count(self) -> int:
        try:
            (total,) = self.connection.execute("SELECT count(*) FROM entry").fetchone()
        except duckdb.Error as exc:
            raise StorageError(f"Counting entries failed: {exc}") from exc
        return int(total)

    def iter_rows(self) -> Iterator[Dict[str, Optional[str]]]:
        """Yield every row ordered by title (byte order), ties by insertion order."""

        try:
            rows = self.connection.execute(_SELECT_ORDERED_SQL).fetchall()
        except duckdb.Error as exc:
            raise StorageError(f"Reading entries failed: {exc}") from exc
        for row in rows:
            yield dict(zip(STORE_COLUMNS, row))

    def store_entries(self, records: Sequence[MetadataRecord]) -> int:
        """Insert ``records``; duplicates of stored IRIs are skipped silently.

        Every record is validated before anything is written, so one invalid
        record aborts the whole batch.

        Args:
            records: Records produced by an extractor or the manual merger.

        Returns:
            int: Number of rows actually inserted.

        Raises:
            ValidationError: If any record fails :meth:`MetadataRecord.is_valid`.
            StorageError: If the insert fails for any reason other than a duplicate key.
        """

        for record in records:
            if not record.is_valid():
                problems = ", ".join(record.validation_problems())
                raise ValidationError(
                    f"Metadata record for {record.ontology_iri!r} is invalid: {problems}"
                )

        inserted = 0
        for record in records:
            try:
                self._insert(record)
            except DuplicateKeyError as exc:
                logger.debug(
                    f"Keeping existing entry for {exc.iri}",
                    extra={"stage": "store", "ontology_iri": exc.iri},
                )
                continue
            inserted += 1
        return inserted

    def _insert(self, record: MetadataRecord) -> None:
        row = record.to_row()
        params = [normalize_iri(record.ontology_iri or ""), *(row[column] for column in STORE_COLUMNS)]
        try:
            self.connection.execute(_INSERT_SQL, params)
        except duckdb.ConstraintException as exc:
            if self.has_entry(record.ontology_iri):
                raise DuplicateKeyError(record.ontology_iri) from exc
            raise StorageError(f"Insert of {record.ontology_iri} failed: {exc}") from exc
        except duckdb.Error as exc:
            raise StorageError(f"Insert of {record.ontology_iri} failed: {exc}") from exc

    def update_entry(self, record: MetadataRecord) -> Tuple[str, ...]:
        """Fill empty columns of the stored row with values from ``record``.

        Columns that already hold a value are left untouched, whatever the
        incoming value is.  No change at all is not an error.

        Returns:
            Tuple[str, ...]: Names of the columns that were filled.

        Raises:
            NotFoundError: If no row exists for ``record.ontology_iri``.
        """

        iri = record.ontology_iri or ""
        stored = self.get_entry_data_as_array(iri)
        if stored is None:
            raise NotFoundError(iri)

        changes: Dict[str, str] = {}
        for column in UPDATABLE_FIELDS:
            incoming = getattr(record, column)
            if is_empty(incoming):
                continue
            if incoming != stored[column] and is_empty(stored[column]):
                changes[column] = incoming

        if not changes:
            return ()

        assignments = ", ".join(f"{column} = ?" for column in changes)
        try:
            self.connection.execute(
                f"UPDATE entry SET {assignments} WHERE iri_key = ?",
                [*changes.values(), normalize_iri(iri)],
            )
        except duckdb.Error as exc:
            raise StorageError(f"Update of {iri} failed: {exc}") from exc
        logger.debug(
            f"Filled {', '.join(changes)} for {iri}",
            extra={"stage": "store", "ontology_iri": iri},
        )
        return tuple(changes)

    # ========================================================================
    # Index Export
    # ========================================================================

    def write_index_csv(self, path: Path) -> int:
        """Write every row to ``path`` as CSV (header plus one line per ontology)."""

        return write_index_csv(self.iter_rows(), path)

    def write_index_jsonl(self, path: Path) -> int:
        """Write every row to ``path`` as one JSON object per line."""

        return write_index_jsonl(self.iter_rows(), path)
