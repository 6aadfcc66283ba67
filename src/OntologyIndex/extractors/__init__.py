"""Registry of extractors, in the order a full harvest runs them."""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Type

from ..errors import ConfigurationError
from ..graph import RdfParser
from ..net import HarvestCache
from ..settings import HarvestConfig
from ..store import MetadataStore
from .base import Extractor, ExtractorStats, align_license
from .bioportal import BioPortalExtractor
from .dbpedia_archivo import DBpediaArchivoExtractor
from .lov import LinkedOpenVocabulariesExtractor
from .ols import OntologyLookupServiceExtractor
from .sweet import SweetOntologiesExtractor

__all__ = [
    "EXTRACTORS",
    "BioPortalExtractor",
    "DBpediaArchivoExtractor",
    "Extractor",
    "ExtractorStats",
    "LinkedOpenVocabulariesExtractor",
    "OntologyLookupServiceExtractor",
    "SweetOntologiesExtractor",
    "align_license",
    "build_extractor",
]

EXTRACTORS: Dict[str, Type[Extractor]] = {
    extractor.NAME: extractor
    for extractor in (
        DBpediaArchivoExtractor,
        LinkedOpenVocabulariesExtractor,
        OntologyLookupServiceExtractor,
        BioPortalExtractor,
        SweetOntologiesExtractor,
    )
}


def build_extractor(
    name: str,
    store: MetadataStore,
    cache: HarvestCache,
    config: Optional[HarvestConfig] = None,
    *,
    strategies: Optional[Sequence[RdfParser]] = None,
) -> Extractor:
    """Instantiate the extractor registered under ``name``."""

    try:
        extractor_cls = EXTRACTORS[name]
    except KeyError as exc:
        raise ConfigurationError(
            f"Unknown extractor {name!r}; expected one of {list(EXTRACTORS)}"
        ) from exc
    return extractor_cls(store, cache, config, strategies=strategies)
