"""Tests for the DuckDB-backed metadata store."""

from pathlib import Path

import pytest

from OntologyIndex.errors import NotFoundError, StorageError, ValidationError
from OntologyIndex.settings import DatabaseConfiguration
from OntologyIndex.store import MetadataStore


class TestBootstrap:
    """Schema creation and lifecycle."""

    def test_bootstrap_creates_entry_table(self, store):
        result = store.connection.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = 'entry'"
        ).fetchone()
        assert result[0] == 1

    def test_migrations_applied_once(self, temp_db_path):
        config = DatabaseConfiguration(db_path=temp_db_path)
        for _ in range(2):
            with MetadataStore(config) as database:
                count = database.connection.execute(
                    "SELECT COUNT(*) FROM schema_version"
                ).fetchone()[0]
        assert count == 1

    def test_connection_requires_bootstrap(self, temp_db_path):
        database = MetadataStore(DatabaseConfiguration(db_path=temp_db_path))
        with pytest.raises(StorageError):
            database.has_entry("http://onto/1")

    def test_rows_survive_reopen(self, temp_db_path, make_record):
        config = DatabaseConfiguration(db_path=temp_db_path)
        with MetadataStore(config) as database:
            database.store_entries([make_record()])
        with MetadataStore(config) as database:
            assert database.has_entry("http://onto/1")

    def test_reset_removes_database_file(self, temp_db_path, make_record):
        with MetadataStore(DatabaseConfiguration(db_path=temp_db_path)) as database:
            database.store_entries([make_record()])
        MetadataStore.reset(temp_db_path)
        assert not Path(temp_db_path).exists()
        with MetadataStore(DatabaseConfiguration(db_path=temp_db_path)) as database:
            assert database.count() == 0


class TestStoreEntries:
    """Insert path: validation gate and first-writer-wins uniqueness."""

    def test_store_and_lookup(self, store, make_record):
        assert store.store_entries([make_record()]) == 1
        assert store.has_entry("http://onto/1")
        row = store.get_entry_data_as_array("http://onto/1")
        assert row["ontology_title"] == "A"
        assert row["latest_turtle_file"] == "http://f/1.ttl"
        assert row["source_title"] == "Test Source"

    def test_unknown_iri(self, store):
        assert not store.has_entry("http://missing")
        assert store.get_entry_data_as_array("http://missing") is None

    def test_lookup_is_case_insensitive(self, store, make_record):
        store.store_entries([make_record(ontology_iri="http://X/a")])
        assert store.has_entry("http://X/a") == store.has_entry("http://x/A") is True

    def test_stored_iri_keeps_its_casing(self, store, make_record):
        store.store_entries([make_record(ontology_iri="http://X/a")])
        assert store.get_entry_data_as_array("http://x/a")["ontology_iri"] == "http://X/a"

    def test_second_record_with_same_iri_is_ignored(self, store, make_record):
        store.store_entries([make_record(ontology_title="A")])
        inserted = store.store_entries([make_record(ontology_title="B")])
        assert inserted == 0
        assert store.get_entry_data_as_array("http://onto/1")["ontology_title"] == "A"
        assert store.count() == 1

    def test_case_variant_duplicate_is_ignored(self, store, make_record):
        store.store_entries([make_record(ontology_iri="http://onto/ABC", ontology_title="A")])
        store.store_entries([make_record(ontology_iri="http://onto/abc", ontology_title="B")])
        assert store.count() == 1
        assert store.get_entry_data_as_array("http://onto/abc")["ontology_title"] == "A"

    def test_duplicates_within_one_batch(self, store, make_record):
        inserted = store.store_entries(
            [make_record(ontology_title="First"), make_record(ontology_title="Second")]
        )
        assert inserted == 1
        assert store.get_entry_data_as_array("http://onto/1")["ontology_title"] == "First"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ontology_title": None},
            {"ontology_iri": None},
            {"latest_turtle_file": None},
            {"ontology_title": "   "},
        ],
    )
    def test_invalid_record_rejected(self, store, make_record, overrides):
        with pytest.raises(ValidationError):
            store.store_entries([make_record(**overrides)])
        assert store.count() == 0

    def test_invalid_record_aborts_whole_batch(self, store, make_record):
        batch = [
            make_record(ontology_iri="http://onto/ok"),
            make_record(ontology_iri="http://onto/bad", latest_turtle_file=None),
        ]
        with pytest.raises(ValidationError):
            store.store_entries(batch)
        assert not store.has_entry("http://onto/ok")


class TestUpdateEntry:
    """Fill-only update semantics."""

    def test_fills_empty_column(self, store, make_record):
        store.store_entries([make_record()])
        changed = store.update_entry(make_record(summary="desc"))
        assert changed == ("summary",)
        assert store.get_entry_data_as_array("http://onto/1")["summary"] == "desc"

    def test_never_overwrites_populated_column(self, store, make_record):
        store.store_entries([make_record(summary="orig")])
        changed = store.update_entry(make_record(summary="new"))
        assert changed == ()
        assert store.get_entry_data_as_array("http://onto/1")["summary"] == "orig"

    def test_fields_are_independent(self, store, make_record):
        store.store_entries([make_record(project_page="https://home")])
        changed = store.update_entry(
            make_record(ontology_title="Other", project_page="https://other", version="1.0")
        )
        row = store.get_entry_data_as_array("http://onto/1")
        assert changed == ("version",)
        assert row["ontology_title"] == "A"
        assert row["project_page"] == "https://home"
        assert row["version"] == "1.0"

    def test_empty_incoming_values_change_nothing(self, store, make_record):
        store.store_entries([make_record(summary="orig")])
        assert store.update_entry(make_record(summary="")) == ()
        assert store.get_entry_data_as_array("http://onto/1")["summary"] == "orig"

    def test_provenance_is_not_updated(self, store, make_record):
        store.store_entries([make_record()])
        store.update_entry(make_record(source_title="Other", source_url="https://other"))
        row = store.get_entry_data_as_array("http://onto/1")
        assert row["source_title"] == "Test Source"

    def test_update_matches_case_insensitively(self, store, make_record):
        store.store_entries([make_record(ontology_iri="http://onto/CASE")])
        store.update_entry(make_record(ontology_iri="http://onto/case", summary="desc"))
        assert store.get_entry_data_as_array("http://onto/CASE")["summary"] == "desc"

    def test_missing_entry_raises(self, store, make_record):
        with pytest.raises(NotFoundError) as excinfo:
            store.update_entry(make_record(ontology_iri="http://missing"))
        assert excinfo.value.iri == "http://missing"


class TestIterRows:
    def test_rows_ordered_by_title(self, store, make_record):
        store.store_entries(
            [
                make_record(ontology_iri="http://z", ontology_title="Zeta"),
                make_record(ontology_iri="http://a", ontology_title="Alpha"),
                make_record(ontology_iri="http://b", ontology_title="beta"),
            ]
        )
        titles = [row["ontology_title"] for row in store.iter_rows()]
        assert titles == ["Alpha", "Zeta", "beta"]

    def test_equal_titles_keep_insertion_order(self, store, make_record):
        store.store_entries(
            [
                make_record(ontology_iri="http://second", ontology_title="Same"),
                make_record(ontology_iri="http://first", ontology_title="Same"),
            ]
        )
        iris = [row["ontology_iri"] for row in store.iter_rows()]
        assert iris == ["http://second", "http://first"]
