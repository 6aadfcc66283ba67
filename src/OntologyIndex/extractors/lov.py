"""Extractor for Linked Open Vocabularies (https://lov.linkeddata.es/dataset/lov/).

The vocabulary list comes from the LOV JSON API.  Metadata and distribution
links come from the full LOV dump, which is gunzipped into the work directory
and parsed without a triple cap.  rapper goes first for the dump because it
streams large N3 files better than rdflib.
"""

from __future__ import annotations

import gzip
import shutil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..errors import ExtractionError, TransientSourceError
from ..graph import Graph, load_graph
from ..records import MetadataRecord, clean_title, is_empty
from .base import Extractor

LIST_URL = "https://lov.linkeddata.es/dataset/lov/api/v2/vocabulary/list"


def gunzip_file(source: Path, target: Path) -> Path:
    """Decompress ``source`` into ``target``, replacing any previous file."""

    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        target.unlink()
    with gzip.open(source, "rb") as compressed, target.open("wb") as plain:
        shutil.copyfileobj(compressed, plain)
    return target


def _pick_title(titles: Any) -> str:
    if not isinstance(titles, list) or not titles:
        return ""
    for entry in titles:
        if isinstance(entry, Mapping) and entry.get("lang") == "en":
            return clean_title(entry.get("value"))
    first = titles[0]
    return clean_title(first.get("value") if isinstance(first, Mapping) else str(first))


class LinkedOpenVocabulariesExtractor(Extractor):
    NAME = "lov"
    SOURCE_TITLE = "Linked Open Vocabularies"
    SOURCE_URL = "https://lov.linkeddata.es/lov.n3.gz"
    NAMESPACE = "extractor_linked_open_vocabularies"

    @property
    def dump_path(self) -> Path:
        return self.config.sources.resolved_work_dir() / "lov.n3"

    def run(self) -> None:
        self.narrate("Linked Open Vocabularies - Extraction started ...")

        ontologies = self.get_ontologies_to_process()
        self.narrate(f"{len(ontologies)} ontologies to process")
        if not ontologies:
            return

        dump = self.load_dump()
        for record in ontologies.values():
            self.process(record, dump)

    def get_ontologies_to_process(self) -> Dict[str, MetadataRecord]:
        """Return prepared records keyed by IRI for every vocabulary not yet stored."""

        payload = self.cache.fetch_json(LIST_URL, self.NAMESPACE)
        if not isinstance(payload, list):
            raise ExtractionError(f"Unexpected response from {LIST_URL}: expected a list")

        result: Dict[str, MetadataRecord] = {}
        for entry in payload:
            iri = str(entry.get("uri") or "").strip() if isinstance(entry, Mapping) else ""
            if is_empty(iri) or self.already_known(iri):
                continue
            title = _pick_title(entry.get("titles"))
            if is_empty(title):
                self.skip("vocabulary without title", iri=iri)
                continue
            record = self.get_prepared_index_entry()
            record.ontology_title = title
            record.ontology_iri = iri
            result[iri] = record
        return result

    def load_dump(self) -> Graph:
        archive = self.cache.local_file_path_for(self.SOURCE_URL)
        dump_path = gunzip_file(archive, self.dump_path)
        self.narrate(f"{self.SOURCE_URL} downloaded and uncompressed to {dump_path}")

        strategies = sorted(self.strategies, key=lambda strategy: strategy.name != "rapper")
        return load_graph(dump_path, "n3", strategies=strategies, max_triples=None)

    def latest_distribution(self, dump: Graph, iri: str) -> Optional[str]:
        distributions: List[str] = [
            value
            for value in dump.get_property_values(iri, "dcat:distribution")
            if not value.startswith("_:")
        ]
        distributions.sort(reverse=True)
        return distributions[0] if distributions else None

    def process(self, record: MetadataRecord, dump: Graph) -> None:
        iri = record.ontology_iri or ""
        self.narrate(f" - process {record.ontology_title} >> {iri}", iri=iri)
        self.add_further_metadata(record, dump)

        n3_file = self.latest_distribution(dump, iri)
        if n3_file is None:
            self.skip("no N3 distribution found", iri=iri)
            return
        record.latest_n3_file = n3_file

        try:
            graph, path = self.load_remote_graph(n3_file, "n3")
        except TransientSourceError as exc:
            self.skip(f"{n3_file} not available: {exc}", iri=iri)
            return
        self.add_further_metadata(record, graph)

        if not self.contains_ontology_elements(graph):
            self.skip(f"file {path.name} does not contain any ontology related instances", iri=iri)
            return
        self.store_record(record)
