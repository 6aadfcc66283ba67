"""Extractor for the NCBO BioPortal REST API (https://data.bioontology.org/documentation).

Every request needs a personal API key, read from the settings or from the
key file named there.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..errors import ConfigurationError, ExtractionError, TransientSourceError
from ..graph import RdfParser
from ..net import HarvestCache
from ..records import is_empty
from ..settings import HarvestConfig
from ..store import MetadataStore
from .base import FORMAT_LINK_FIELDS, Extractor

LIST_URL = (
    "https://data.bioontology.org/ontologies"
    "?include=all&display_context=false&display_links=true&apikey="
)
SUBMISSION_QUERY = "?include=all&display_context=false&display_links=false&apikey="

_UI_DOWNLOAD_LINK = re.compile(
    r"href='(https://data\.bioontology\.org/ontologies/[a-zA-Z\-_]+/download)"
    r"\?apikey=.*?&(download_format=rdf)",
    re.IGNORECASE | re.DOTALL,
)

# Too large to parse within a run.
IGNORED_ACRONYMS = ("DRON", "HOOM")


class BioPortalExtractor(Extractor):
    NAME = "bioportal"
    SOURCE_TITLE = "BioPortal"
    SOURCE_URL = "https://data.bioontology.org/documentation"
    NAMESPACE = "extractor_bioportal"

    def __init__(
        self,
        store: MetadataStore,
        cache: HarvestCache,
        config: Optional[HarvestConfig] = None,
        *,
        strategies: Optional[Sequence[RdfParser]] = None,
    ) -> None:
        super().__init__(store, cache, config, strategies=strategies)
        api_key = self.config.sources.resolve_bioportal_api_key()
        if not api_key:
            raise ConfigurationError(
                "No BioPortal API key configured; set ONTOINDEX_BIOPORTAL_API_KEY "
                "or sources.bioportal_api_key_file"
            )
        self.api_key = api_key

    def get_ontologies_to_process(self) -> List[Mapping[str, Any]]:
        payload = self.cache.fetch_json(LIST_URL + self.api_key, self.NAMESPACE)
        if not isinstance(payload, list):
            raise ExtractionError("Unexpected BioPortal ontology list: expected a JSON array")
        self.narrate(f"loaded {len(payload)} entries")
        return [entry for entry in payload if isinstance(entry, Mapping)]

    def run(self) -> None:
        self.narrate("BioPortal - Extraction started ...")
        for ontology in self.get_ontologies_to_process():
            try:
                self.process(ontology)
            except TransientSourceError as exc:
                self.skip(str(exc))

    def pick_download(self, links: Mapping[str, Any]) -> Optional[Tuple[str, str, str]]:
        """Return ``(public link, link with key, format)`` for the ontology file, if usable.

        The RDF/XML link on the UI page is preferred; the API download link is
        the fallback and its format has to be sniffed.
        """

        ui_page = self.cache.fetch_cached(str(links.get("ui")), self.NAMESPACE)
        match = _UI_DOWNLOAD_LINK.search(ui_page)
        if match is not None:
            public = f"{match.group(1)}?{match.group(2)}"
            self.narrate(" - use ui link")
            return public, f"{public}&apikey={self.api_key}", "rdfxml"

        download = links.get("download")
        if is_empty(download):
            return None
        public = str(download)
        with_key = f"{public}?apikey={self.api_key}"
        if self._is_ignored(with_key):
            return public, with_key, ""
        fmt = self.guess_format_of(with_key)
        if fmt is None:
            self.narrate(" - unknown format")
            return None
        self.narrate(" - use download link")
        return public, with_key, fmt

    @staticmethod
    def _is_ignored(url: str) -> bool:
        return any(
            f"data.bioontology.org/ontologies/{acronym}/" in url for acronym in IGNORED_ACRONYMS
        )

    def process(self, ontology: Mapping[str, Any]) -> None:
        links = ontology.get("links") or {}
        record = self.get_prepared_index_entry()
        record.ontology_title = ontology.get("name")
        self.narrate(f"Next: {record.ontology_title}")

        submission_url = f"{links.get('latest_submission')}{SUBMISSION_QUERY}{self.api_key}"
        submission = self.cache.fetch_json(submission_url, self.NAMESPACE)
        iri = submission.get("uri") if isinstance(submission, Mapping) else None
        if is_empty(iri):
            self.skip("latest submission is empty")
            return
        iri = str(iri)
        if self.already_known(iri):
            return
        record.ontology_iri = iri
        record.source_page = links.get("ui")

        picked = self.pick_download(links)
        if picked is None:
            self.skip("no usable download link", iri=iri)
            return
        public, with_key, fmt = picked
        if self._is_ignored(with_key):
            self.skip("takes too long, will be ignored", iri=iri)
            return

        link_field = FORMAT_LINK_FIELDS.get(fmt)
        if link_field is None or fmt in ("json-ld", "n3"):
            self.skip(f"no valid RDF notation found ({fmt}) for {public}", iri=iri)
            return
        setattr(record, link_field, public)

        graph, path = self.load_remote_graph(with_key, fmt)
        if not (self.contains_ontology_elements(graph) or len(graph) == 0):
            self.skip(f"file {path.name} does not contain any ontology related instances", iri=iri)
            return

        self.add_further_metadata(record, graph)
        if is_empty(record.modified) and not is_empty(submission.get("released")):
            record.modified = str(submission["released"])[:10]
        if is_empty(record.ontology_title):
            self.skip("no title found", iri=iri)
            return
        self.store_record(record)
