"""Exception hierarchy shared across extraction, storage, and export.

A harvesting run spans remote registries, local RDF parsing, and an embedded
DuckDB store.  This module groups the failure modes into a small hierarchy so
the driver can tell fatal problems (storage failures, invalid records,
configuration gaps) from conditions an extractor is expected to skip over
(transient HTTP failures, unparsable files).
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

__all__ = [
    "HarvestError",
    "ConfigurationError",
    "ValidationError",
    "DuplicateKeyError",
    "NotFoundError",
    "StorageError",
    "FailureKind",
    "SourceError",
    "TransientSourceError",
    "ParseError",
    "ExtractionError",
]


class HarvestError(RuntimeError):
    """Base exception for ontology index harvesting failures."""


class ConfigurationError(HarvestError):
    """Raised when configuration inputs, key files, or override tables are invalid."""


class ValidationError(HarvestError):
    """Raised when a metadata record is malformed or incomplete."""


class DuplicateKeyError(HarvestError):
    """Raised by the store when an insert collides with an existing identifier."""

    def __init__(self, iri: str) -> None:
        super().__init__(f"Entry already exists: {iri}")
        self.iri = iri


class NotFoundError(HarvestError):
    """Raised when an update targets an identifier that is not stored."""

    def __init__(self, iri: str) -> None:
        super().__init__(f"No entry stored for {iri}")
        self.iri = iri


class StorageError(HarvestError):
    """Raised when the metadata store fails for reasons other than a duplicate key."""


class FailureKind(str, Enum):
    """Whether a source failure should skip the current ontology or abort the run."""

    TRANSIENT = "transient"
    FATAL = "fatal"


class SourceError(HarvestError):
    """Raised when an HTTP request against a registry or file host fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        kind: FailureKind = FailureKind.FATAL,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.kind = kind

    @property
    def transient(self) -> bool:
        return self.kind is FailureKind.TRANSIENT


class TransientSourceError(SourceError):
    """Source failure (403/404/500/504 or timeout) that only skips the current ontology."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, url=url, status_code=status_code, kind=FailureKind.TRANSIENT)


class ParseError(HarvestError):
    """Raised when a single RDF parser strategy cannot read a file."""

    def __init__(self, message: str, *, parser: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.parser = parser
        self.path = path


class ExtractionError(HarvestError):
    """Raised when a registry responds in a shape the extractor cannot work with."""
