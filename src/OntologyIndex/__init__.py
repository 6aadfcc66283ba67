"""Public API for the ontology index harvester.

The harvester polls public ontology registries, downloads the RDF files they
point to, extracts descriptive metadata, and consolidates everything into a
de-duplicated index backed by a local DuckDB store.  Typical use goes through
the ``ontoindex`` command; the pieces below are exposed for scripting.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    HarvestError,
    NotFoundError,
    SourceError,
    StorageError,
    TransientSourceError,
    ValidationError,
)
from .manual import ManualOverrideMerger, MergeSummary
from .net import HarvestCache
from .pipeline import HarvestReport, export_index, run_harvest
from .records import MetadataRecord
from .settings import HarvestConfig, load_config
from .store import MetadataStore

__all__ = [
    "__version__",
    "ConfigurationError",
    "HarvestCache",
    "HarvestConfig",
    "HarvestError",
    "HarvestReport",
    "ManualOverrideMerger",
    "MergeSummary",
    "MetadataRecord",
    "MetadataStore",
    "NotFoundError",
    "SourceError",
    "StorageError",
    "TransientSourceError",
    "ValidationError",
    "export_index",
    "load_config",
    "run_harvest",
]
