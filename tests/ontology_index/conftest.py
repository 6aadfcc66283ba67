"""Shared fixtures for the ontology index test suite.

Everything runs offline: HTTP access goes through :class:`FakeCache` (or an
``httpx.MockTransport`` in the cache tests) and every file lands under
``tmp_path``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

import pytest

from OntologyIndex.errors import SourceError, TransientSourceError
from OntologyIndex.graph import RdflibParser
from OntologyIndex.net import sanitize_url_to_filename
from OntologyIndex.records import MetadataRecord
from OntologyIndex.settings import (
    DatabaseConfiguration,
    HarvestConfig,
    HttpConfiguration,
    LoggingConfiguration,
    SourcesConfiguration,
)
from OntologyIndex.store import MetadataStore


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Keep logs under ``tmp_path`` and ignore developer ``ONTOINDEX_*`` variables."""

    for name in list(os.environ):
        if name.startswith("ONTOINDEX_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ONTOINDEX_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    return tmp_path / "db" / "test-index.duckdb"


@pytest.fixture
def store(temp_db_path):
    """Bootstrapped store on a temporary DuckDB file."""

    database = MetadataStore(DatabaseConfiguration(db_path=temp_db_path))
    database.bootstrap()
    yield database
    database.close()


@pytest.fixture
def make_record() -> Callable[..., MetadataRecord]:
    """Factory for valid records; keyword arguments override the defaults."""

    def _make(**overrides: Optional[str]) -> MetadataRecord:
        values: Dict[str, Optional[str]] = {
            "ontology_iri": "http://onto/1",
            "ontology_title": "A",
            "latest_turtle_file": "http://f/1.ttl",
        }
        values.update(overrides)
        source_title = values.pop("source_title", None) or "Test Source"
        source_url = values.pop("source_url", None) or "https://example.org/source"
        return MetadataRecord(source_title=source_title, source_url=source_url, **values)

    return _make


@pytest.fixture
def harvest_config(tmp_path, temp_db_path) -> HarvestConfig:
    """Configuration whose every path points into ``tmp_path``."""

    return HarvestConfig(
        logging=LoggingConfiguration(log_dir=tmp_path / "logs"),
        database=DatabaseConfiguration(db_path=temp_db_path),
        http=HttpConfiguration(
            cache_dir=tmp_path / "cache" / "http",
            files_dir=tmp_path / "cache" / "files",
        ),
        sources=SourcesConfiguration(
            work_dir=tmp_path / "var",
            manual_csv_path=tmp_path / "manual.csv",
        ),
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def rdflib_only():
    """Parser strategies without the rapper subprocess."""

    return [RdflibParser()]


class FakeCache:
    """Offline stand-in for :class:`OntologyIndex.net.HarvestCache`.

    ``pages`` maps URLs to response bodies (``str``, or any JSON-serialisable
    object), ``files`` maps URLs to file contents.  URLs listed in
    ``transient`` raise :class:`TransientSourceError`.
    """

    def __init__(self, files_dir: Path):
        self.files_dir = files_dir
        self.pages: Dict[str, Union[str, object]] = {}
        self.files: Dict[str, Union[str, bytes]] = {}
        self.transient: Set[str] = set()
        self.requested: List[str] = []

    def _check(self, url: str) -> None:
        self.requested.append(url)
        if url in self.transient:
            raise TransientSourceError(f"HTTP 404 for {url}", url=url, status_code=404)

    def fetch_cached(self, url: str, namespace: str) -> str:
        self._check(url)
        if url not in self.pages:
            raise SourceError(f"HTTP 400 for {url}", url=url, status_code=400)
        body = self.pages[url]
        return body if isinstance(body, str) else json.dumps(body)

    def fetch_json(self, url: str, namespace: str) -> object:
        return json.loads(self.fetch_cached(url, namespace))

    def file_path_for(self, url: str) -> Path:
        return self.files_dir / sanitize_url_to_filename(url)

    def local_file_path_for(self, url: str) -> Path:
        self._check(url)
        target = self.file_path_for(url)
        if not target.exists():
            if url not in self.files:
                raise SourceError(f"HTTP 400 for {url}", url=url, status_code=400)
            target.parent.mkdir(parents=True, exist_ok=True)
            content = self.files[url]
            if isinstance(content, str):
                content = content.encode("utf-8")
            target.write_bytes(content)
        return target

    def close(self) -> None:
        pass


@pytest.fixture
def fake_cache(tmp_path) -> FakeCache:
    return FakeCache(tmp_path / "fake-files")
