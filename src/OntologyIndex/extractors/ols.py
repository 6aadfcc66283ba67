"""Extractor for the EBI Ontology Lookup Service (https://www.ebi.ac.uk/ols4/)."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

from ..errors import ExtractionError, TransientSourceError
from ..records import MetadataRecord, is_empty, is_url
from .base import FORMAT_LINK_FIELDS, Extractor

LIST_URL = "https://www.ebi.ac.uk/ols4/api/ontologies"


def _get(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(data, Mapping):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int) and -len(data) <= key < len(data):
            data = data[key]
        else:
            return None
    return data


class OntologyLookupServiceExtractor(Extractor):
    """Walks the paginated OLS ontology list.

    OLS entries do not carry the ontology IRI directly, so the first term of
    every ontology is fetched to read it.
    """

    NAME = "ols"
    SOURCE_TITLE = "Ontology Lookup Service (OLS)"
    SOURCE_URL = LIST_URL
    NAMESPACE = "extractor_ontology_lookup_service"

    def run(self) -> None:
        self.narrate("Ontology Lookup Service - Extraction started ...")
        for ontology in self.iter_ontologies():
            self.process(ontology)

    def iter_ontologies(self) -> Iterator[Mapping[str, Any]]:
        """Yield the raw ontology objects of every result page.

        Raises:
            ExtractionError: If the first page does not report ``page.totalPages``.
        """

        total_pages = _get(self.cache.fetch_json(LIST_URL, self.NAMESPACE), "page", "totalPages")
        if total_pages is None:
            raise ExtractionError("Could not determine total number of pages.")

        for page in range(int(total_pages)):
            self.narrate(f"---- Page: {page} ----")
            payload = self.cache.fetch_json(f"{LIST_URL}?page={page}", self.NAMESPACE)
            ontologies = _get(payload, "_embedded", "ontologies")
            if not isinstance(ontologies, list):
                continue
            for ontology in ontologies:
                if isinstance(ontology, Mapping):
                    yield ontology

    def resolve_iri(self, terms_url: str) -> Optional[str]:
        payload = self.cache.fetch_json(terms_url, self.NAMESPACE)
        if not isinstance(payload, Mapping) or "status" in payload or "_embedded" not in payload:
            status = _get(payload, "status")
            self.skip(f"terms response without data (status: {status})")
            return None
        iri = _get(payload, "_embedded", "terms", 0, "ontology_iri")
        if is_empty(iri):
            self.skip(f"no ontology IRI in {terms_url}")
            return None
        return str(iri)

    def process(self, ontology: Mapping[str, Any]) -> None:
        terms_url = _get(ontology, "_links", "terms", "href")
        if is_empty(terms_url):
            self.skip("ontology without terms link")
            return
        self.narrate(f"Next: {terms_url}")

        try:
            iri = self.resolve_iri(str(terms_url))
        except TransientSourceError as exc:
            self.skip(str(exc))
            return
        if iri is None or self.already_known(iri):
            return

        file_location = _get(ontology, "config", "fileLocation")
        if is_empty(file_location) or not is_url(str(file_location).strip()):
            self.skip(f"file location {file_location!r} is not a URL", iri=iri)
            return
        file_location = str(file_location).strip()

        try:
            fmt = self.guess_format_of(file_location)
            graph, path = self.load_remote_graph(file_location, fmt)
        except TransientSourceError as exc:
            self.skip(str(exc), iri=iri)
            return

        link_field = FORMAT_LINK_FIELDS.get(fmt or "")
        if link_field is None:
            self.skip(f"unknown file format ({fmt}) for {file_location}", iri=iri)
            return

        record: MetadataRecord = self.get_prepared_index_entry()
        record.ontology_iri = iri

        title = _get(ontology, "config", "title")
        if is_empty(title):
            title = graph.get_label(iri)
        if is_empty(title):
            self.skip("no title found", iri=iri)
            return
        record.ontology_title = str(title)

        updated = _get(ontology, "updated")
        if not is_empty(updated):
            record.modified = str(updated)
        setattr(record, link_field, file_location)

        if not self.contains_ontology_elements(graph):
            self.skip(f"file {path.name} does not contain any ontology related instances", iri=iri)
            return
        self.add_further_metadata(record, graph)
        self.store_record(record)
