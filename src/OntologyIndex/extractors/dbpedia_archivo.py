"""Extractor for the DBpedia Archivo ontology archive (https://archivo.dbpedia.org/list)."""

from __future__ import annotations

import logging
import re
from typing import List
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from ..errors import ExtractionError, TransientSourceError
from ..records import MetadataRecord, clean_string, is_empty
from .base import Extractor

LOGGER = logging.getLogger(__name__)

_INFO_PREFIX = "/info?o="
_LATEST_DATE = re.compile(r"nt</a>.*?>(\d{4})\.(\d{2})\.(\d{2})", re.DOTALL | re.IGNORECASE)
_DOWNLOAD_URL = "http://archivo.dbpedia.org/download?o={iri}&f={fmt}"


class DBpediaArchivoExtractor(Extractor):
    """Reads the archive's HTML list page; every row links one ontology."""

    NAME = "dbpedia_archivo"
    SOURCE_TITLE = "DBpedia Archivo"
    SOURCE_URL = "https://archivo.dbpedia.org/list"
    NAMESPACE = "extractor_dbpedia_archivo"

    def run(self) -> None:
        self.narrate("DBpedia Archivo - Extraction started ...")

        for record in self.get_ontologies_to_process():
            self.narrate(f"Next: {record.ontology_title} >> {record.latest_ntriples_file}")
            try:
                graph, path = self.load_remote_graph(record.latest_ntriples_file or "", "ntriples")
            except TransientSourceError as exc:
                self.skip(str(exc), iri=record.ontology_iri)
                continue

            if not self.contains_ontology_elements(graph):
                self.skip(
                    f"file {path.name} does not contain any ontology related instances",
                    iri=record.ontology_iri,
                )
                continue
            self.add_further_metadata(record, graph)
            self.store_record(record)

    def get_ontologies_to_process(self) -> List[MetadataRecord]:
        """Parse the list page into prepared records; known IRIs are left out.

        Raises:
            ExtractionError: If the page holds no ontology rows, or a row lacks
                its latest archive date.
        """

        html = self.cache.fetch_cached(self.SOURCE_URL, self.NAMESPACE)
        rows = BeautifulSoup(html, "lxml").find_all("tr")
        if not rows:
            raise ExtractionError(f"No ontology entries found at {self.SOURCE_URL}")

        result: List[MetadataRecord] = []
        for row in rows:
            if row.find("th") is not None:
                continue

            anchor = None
            for candidate in row.find_all("a", href=True):
                if candidate["href"].startswith(_INFO_PREFIX):
                    anchor = candidate
                    break
            if anchor is None:
                LOGGER.debug(
                    "Row without info link ignored", extra={"stage": "extract", "extractor": self.NAME}
                )
                continue

            title = clean_string(anchor.get_text())
            iri = anchor["href"][len(_INFO_PREFIX):].strip()
            if is_empty(title) or is_empty(iri):
                self.narrate("no ontology title or IRI, row ignored", level=logging.DEBUG)
                continue
            if self.already_known(iri):
                continue

            record = self.get_prepared_index_entry()
            record.source_page = "https://archivo.dbpedia.org" + anchor["href"]
            record.ontology_title = title
            record.ontology_iri = iri

            latest = _LATEST_DATE.search(str(row))
            if latest is None:
                raise ExtractionError(f"Can not read latest timestamp field for {iri}")
            record.modified = "-".join(latest.groups())

            encoded = quote_plus(iri)
            record.latest_ntriples_file = _DOWNLOAD_URL.format(iri=encoded, fmt="nt")
            record.latest_rdfxml_file = _DOWNLOAD_URL.format(iri=encoded, fmt="owl")
            record.latest_turtle_file = _DOWNLOAD_URL.format(iri=encoded, fmt="ttl")
            result.append(record)

        return result
