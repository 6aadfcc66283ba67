"""Shared behaviour for registry extractors.

Every extractor turns one registry into :class:`~OntologyIndex.records.MetadataRecord`
instances and pushes them into the store.  The base class holds the pieces all
of them share: access to the store and cache, loading remote RDF files into a
:class:`~OntologyIndex.graph.Graph`, and deriving summary, license, authors,
and dates from the ontology header.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..graph import Graph, RdfParser, default_strategies, load_graph, sniff_file_format
from ..net import HarvestCache
from ..records import MetadataRecord, clean_string, is_empty
from ..settings import HarvestConfig
from ..store import MetadataStore

__all__ = ["FORMAT_LINK_FIELDS", "Extractor", "ExtractorStats", "align_license"]

LOGGER = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")

_LICENSE_ALIGNMENT: Dict[str, str] = {
    "https://www.apache.org/licenses/LICENSE-2.0": "Apache License 2.0",
    "http://purl.org/NET/rdflicense/cc-by3.0": "CC-BY 3.0",
    "http://purl.org/NET/rdflicense/cc-by4.0": "CC-BY 4.0",
    "http://creativecommons.org/publicdomain/zero/1.0/": "CC0 1.0 DEED",
    "https://creativecommons.org/publicdomain/zero/1.0/": "CC0 1.0 DEED",
    "https://creativecommons.org/licenses/by/1.0": "CC-BY 1.0",
    "https://creativecommons.org/licenses/by/1.0/": "CC-BY 1.0",
    "http://creativecommons.org/licenses/by/2.0": "CC-BY 2.0",
    "http://creativecommons.org/licenses/by/2.0/": "CC-BY 2.0",
    "http://creativecommons.org/licenses/by/3.0": "CC-BY 3.0",
    "http://creativecommons.org/licenses/by/3.0/": "CC-BY 3.0",
    "https://creativecommons.org/licenses/by/3.0/": "CC-BY 3.0",
    "https://creativecommons.org/licenses/by/4.0": "CC-BY 4.0",
    "https://creativecommons.org/licenses/by/4.0/": "CC-BY 4.0",
    "http://creativecommons.org/licenses/by/4.0/": "CC-BY 4.0",
    "http://creativecommons.org/licenses/by/4.0": "CC-BY 4.0",
    "https://creativecommons.org/licenses/by/4.0/legalcode": "CC-BY 4.0",
    "Creative Commons Attribution 4.0 International": "CC-BY 4.0",
    "Creative Commons Attribution 4.0 International (CC BY 4.0)": "CC-BY 4.0",
    "https://creativecommons.org/licenses/by-nc/3.0/legalcode": "CC-BY-NC 3.0",
    "https://creativecommons.org/licenses/by-nc/4.0/": "CC-BY-NC 4.0",
    "http://creativecommons.org/licenses/by-nc-sa/2.0/": "CC-BY-NC-SA 2.0",
    "http://creativecommons.org/licenses/by-nc-sa/3.0/": "CC-BY-NC-SA 3.0",
    "https://creativecommons.org/licenses/by-nd/4.0/": "CC-BY-ND 4.0",
    "https://creativecommons.org/licenses/by-sa/4.0/": "CC-BY-SA 4.0",
    "GNU General Public License": "GPL-1.0",
    "http://opensource.org/licenses/MIT": "MIT",
    "https://opensource.org/licenses/MIT": "MIT",
    "http://www.opendatacommons.org/licenses/pddl/1.0/": "PDDL 1.0",
}

# Titles without a canonical URL; kept as they are.
_KNOWN_LICENSE_TITLES = frozenset(
    {
        *_LICENSE_ALIGNMENT.values(),
        "BSD-2-Clause",
        "BSD-3-Clause",
        "CC0 1.0 Universal",
        "CC-BY-SA 3.0",
        "GPL-3.0",
        "Information not available",
        "OGC Document License Agreement",
        "W3C Document License (2023)",
    }
)

SUMMARY_PROPERTIES = (
    "skos:definition",
    "dc11:description",
    "dc:description",
    "rdfs:comment",
    "schema:description",
)
LICENSE_PROPERTIES = ("dc:license", "dc11:license", "dc:rights", "dc11:rights", "schema:license")
AUTHOR_PROPERTIES = ("dc:creator", "dc11:creator", "schema:author")
CONTRIBUTOR_PROPERTIES = ("dc:contributor", "dc11:contributor", "schema:contributor")
PROJECT_PAGE_PROPERTIES = ("foaf:homepage", "schema:WebSite", "schema:url", "rdfs:seeAlso")
VERSION_PROPERTIES = ("owl:versionInfo", "schema:schemaVersion", "schema:version")
MODIFIED_PROPERTIES = ("dc:modified", "dc11:modified", "schema:dateModified")
CREATED_PROPERTIES = ("dc:created", "dc11:created", "schema:dateCreated")
ONTOLOGY_ELEMENT_TYPES = ("owl:Ontology", "owl:Class", "rdf:Property", "rdfs:Class", "skos:Concept")

# sniffed format -> record field holding the distribution link
FORMAT_LINK_FIELDS: Dict[str, str] = {
    "json-ld": "latest_json_ld_file",
    "n3": "latest_n3_file",
    "ntriples": "latest_ntriples_file",
    "rdfxml": "latest_rdfxml_file",
    "turtle": "latest_turtle_file",
}


def align_license(value: str) -> str:
    """Map a license URL or title onto its short display title."""

    value = value.strip()
    if value in _LICENSE_ALIGNMENT:
        return _LICENSE_ALIGNMENT[value]
    if value in _KNOWN_LICENSE_TITLES:
        return value
    return clean_string(value)


@dataclass
class ExtractorStats:
    """Per-run counters reported by the driver."""

    stored: int = 0
    skipped: int = 0


class Extractor(ABC):
    """Base class for registry extractors.

    Subclasses define ``NAME``, ``SOURCE_TITLE``, ``SOURCE_URL`` and a cache
    ``NAMESPACE`` and implement :meth:`run`.  They must call
    :meth:`MetadataStore.has_entry` before downloading or parsing anything for
    an ontology.
    """

    NAME: str = ""
    SOURCE_TITLE: str = ""
    SOURCE_URL: str = ""
    NAMESPACE: str = ""

    def __init__(
        self,
        store: MetadataStore,
        cache: HarvestCache,
        config: Optional[HarvestConfig] = None,
        *,
        strategies: Optional[Sequence[RdfParser]] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.config = config or HarvestConfig()
        self.strategies = (
            list(strategies) if strategies is not None else default_strategies(self.config.parser)
        )
        self.stats = ExtractorStats()

    @abstractmethod
    def run(self) -> None:
        """Crawl the registry and store every new, valid record."""

    def get_prepared_index_entry(self) -> MetadataRecord:
        """Return an empty record stamped with this extractor's source."""

        return MetadataRecord(source_title=self.SOURCE_TITLE, source_url=self.SOURCE_URL)

    # --- narration -------------------------------------------------------------

    def narrate(self, message: str, *, iri: Optional[str] = None, level: int = logging.INFO) -> None:
        LOGGER.log(
            level,
            message,
            extra={"stage": "extract", "extractor": self.NAME, "ontology_iri": iri},
        )

    def skip(self, reason: str, *, iri: Optional[str] = None) -> None:
        self.stats.skipped += 1
        self.narrate(f" - SKIPPED: {reason}", iri=iri)

    def store_record(self, record: MetadataRecord) -> None:
        self.stats.stored += self.store.store_entries([record])
        self.narrate(f" - stored {record.ontology_title}", iri=record.ontology_iri)

    def already_known(self, iri: str) -> bool:
        if self.store.has_entry(iri):
            self.skip("already in temporary index", iri=iri)
            return True
        return False

    # --- RDF loading -----------------------------------------------------------

    def load_local_graph(
        self, path: Path, fmt: Optional[str] = None, *, max_triples: Optional[int] = -1
    ) -> Graph:
        limit = self.config.parser.max_triples if max_triples == -1 else max_triples
        return load_graph(path, fmt, strategies=self.strategies, max_triples=limit)

    def load_remote_graph(self, url: str, fmt: Optional[str] = None) -> Tuple[Graph, Path]:
        """Download ``url`` through the file cache and parse it.

        Raises:
            TransientSourceError: If the download hits a transient HTTP failure.
        """

        path = self.cache.local_file_path_for(url)
        return self.load_local_graph(path, fmt), path

    def guess_format_of(self, url: str) -> Optional[str]:
        return sniff_file_format(self.cache.local_file_path_for(url))

    # --- metadata derivation ---------------------------------------------------

    def get_literal_values(
        self,
        graph: Graph,
        properties: Sequence[str],
        iri: str,
        *,
        only_first: bool = False,
    ) -> List[str]:
        """Collect values for ``properties`` of ``iri``, English literals first.

        Blank nodes are dropped.  With ``only_first`` each property contributes at
        most one value.
        """

        collected: List[str] = []
        for prop in properties:
            values = graph.get_property_values(iri, prop, "en") or graph.get_property_values(
                iri, prop
            )
            values = [value for value in values if not value.startswith("_:")]
            if only_first:
                values = values[:1]
            for value in values:
                if value not in collected:
                    collected.append(value)
        return collected

    def _latest_date(self, graph: Graph, iri: str, properties: Sequence[str]) -> Optional[str]:
        for prop in properties:
            dates = sorted(
                match.group(0)
                for value in graph.get_property_values(iri, prop)
                for match in [_DATE_PATTERN.search(value)]
                if match
            )
            if dates:
                return dates[-1]
        return None

    def add_further_metadata(self, record: MetadataRecord, graph: Graph) -> None:
        """Fill summary, license, people, homepage, version and dates from ``graph``."""

        iri = record.ontology_iri or ""

        summaries = self.get_literal_values(graph, SUMMARY_PROPERTIES, iri, only_first=True)
        summary = clean_string(summaries[0]) if summaries else ""
        if not is_empty(summary):
            record.summary = summary

        for prop in LICENSE_PROPERTIES:
            values = self.get_literal_values(graph, [prop], iri, only_first=True)
            license_title = align_license(values[0]) if values else ""
            if not is_empty(license_title):
                record.license_information = license_title
                break

        authors = clean_string(",".join(self.get_literal_values(graph, AUTHOR_PROPERTIES, iri)))
        if not is_empty(authors):
            record.authors = authors

        contributors = clean_string(
            ",".join(self.get_literal_values(graph, CONTRIBUTOR_PROPERTIES, iri))
        )
        if not is_empty(contributors):
            record.contributors = contributors

        pages = clean_string(",".join(self.get_literal_values(graph, PROJECT_PAGE_PROPERTIES, iri)))
        if not is_empty(pages):
            record.project_page = pages

        versions = self.get_literal_values(graph, VERSION_PROPERTIES, iri, only_first=True)
        version = clean_string(versions[0]) if versions else ""
        if not is_empty(version):
            record.version = version

        modified = self._latest_date(graph, iri, MODIFIED_PROPERTIES)
        if modified is None and is_empty(record.modified):
            modified = self._latest_date(graph, iri, CREATED_PROPERTIES)
        if modified is not None:
            record.modified = modified

    def contains_ontology_elements(self, graph: Graph) -> bool:
        """Return whether ``graph`` declares an ontology, classes, properties or concepts."""

        return any(graph.has_instances_of_type(rdf_type) for rdf_type in ONTOLOGY_ELEMENT_TYPES)
