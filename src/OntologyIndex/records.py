"""Metadata records describing one ontology, plus the string helpers they rely on.

A :class:`MetadataRecord` is the transient, partially-filled value every
extractor produces.  Normalisation happens on assignment, so a record can never
hold a file link that is not URL-shaped, and ``modified`` always keeps only its
``YYYY-MM-DD`` prefix.  The field tuples defined first in this module are the
single source of truth for the store schema, the update rule, and the export
column order.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ValidationError

__all__ = [
    "FILE_LINK_FIELDS",
    "STORE_COLUMNS",
    "UPDATABLE_FIELDS",
    "MetadataRecord",
    "clean_string",
    "clean_title",
    "is_empty",
    "is_url",
    "normalize_iri",
]

FILE_LINK_FIELDS: Tuple[str, ...] = (
    "latest_json_ld_file",
    "latest_n3_file",
    "latest_ntriples_file",
    "latest_rdfxml_file",
    "latest_turtle_file",
)

STORE_COLUMNS: Tuple[str, ...] = (
    "ontology_title",
    "ontology_iri",
    "summary",
    "license_information",
    "authors",
    "contributors",
    "project_page",
    "source_page",
    *FILE_LINK_FIELDS,
    "modified",
    "version",
    "source_title",
    "source_url",
)

# Identity and provenance never change after the first insert.
UPDATABLE_FIELDS: Tuple[str, ...] = tuple(
    column
    for column in STORE_COLUMNS
    if column not in ("ontology_iri", "source_title", "source_url")
)

_URL_PREFIXES = ("http://", "https://", "www.")
_TAG_PATTERN = re.compile(r"<[^>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_NEWLINE_PATTERN = re.compile(r"[\r\n]+")


def normalize_iri(iri: str) -> str:
    """Return the comparison key for ``iri``; the stored value keeps its casing."""

    return iri.strip().lower()


def is_empty(value: Optional[str]) -> bool:
    """Return ``True`` for ``None`` and strings made only of whitespace."""

    return value is None or not str(value).strip()


def is_url(value: str) -> bool:
    return value.startswith(_URL_PREFIXES)


def clean_string(value: Optional[str], remove_quotes: bool = True) -> str:
    """Strip markup and line breaks so the value is safe inside a quoted CSV cell.

    Args:
        value: Raw literal text, possibly containing HTML entities or tags.
        remove_quotes: Replace single and double quotes with spaces.

    Returns:
        str: Single-line text with collapsed whitespace.
    """

    if value is None:
        return ""
    text = html.unescape(str(value))
    text = _TAG_PATTERN.sub("", text)
    text = _NEWLINE_PATTERN.sub("", text)
    if remove_quotes:
        text = text.replace('"', " ").replace("'", " ")
    text = _WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


def clean_title(value: Optional[str]) -> str:
    """Normalise a title: unescape entities, turn newlines and double quotes into spaces."""

    if value is None:
        return ""
    text = html.unescape(str(value))
    text = _NEWLINE_PATTERN.sub(" ", text)
    text = text.replace('"', " ")
    text = _WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


@dataclass(eq=True)
class MetadataRecord:
    """Metadata about one ontology, stamped with the extractor that produced it."""

    source_title: str
    source_url: str
    ontology_iri: Optional[str] = None
    ontology_title: Optional[str] = None
    summary: Optional[str] = None
    license_information: Optional[str] = None
    authors: Optional[str] = None
    contributors: Optional[str] = None
    project_page: Optional[str] = None
    source_page: Optional[str] = None
    latest_json_ld_file: Optional[str] = None
    latest_n3_file: Optional[str] = None
    latest_ntriples_file: Optional[str] = None
    latest_rdfxml_file: Optional[str] = None
    latest_turtle_file: Optional[str] = None
    modified: Optional[str] = None
    version: Optional[str] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("source_title", "source_url"):
            if name in self.__dict__:
                raise AttributeError(f"{name} cannot be changed once a record is created")
            if is_empty(value):
                raise ValidationError(f"{name} must not be empty")
            value = str(value).strip()
        elif value is not None:
            value = str(value).strip()
            if name in FILE_LINK_FIELDS and value and not is_url(value):
                raise ValidationError(f"{value} is not a valid URL ({name})")
            if name == "modified":
                value = value[:10]
        object.__setattr__(self, name, value)

    def file_links(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in FILE_LINK_FIELDS}

    def has_file_link(self) -> bool:
        return any(not is_empty(link) for link in self.file_links().values())

    def is_valid(self) -> bool:
        """Return ``True`` when title, IRI, and at least one distribution link are present."""

        return (
            not is_empty(self.ontology_title)
            and not is_empty(self.ontology_iri)
            and self.has_file_link()
        )

    def validation_problems(self) -> Tuple[str, ...]:
        problems = []
        if is_empty(self.ontology_title):
            problems.append("missing ontology_title")
        if is_empty(self.ontology_iri):
            problems.append("missing ontology_iri")
        if not self.has_file_link():
            problems.append("no distribution file link")
        return tuple(problems)

    def to_row(self) -> Dict[str, Optional[str]]:
        """Return the record as a mapping keyed by :data:`STORE_COLUMNS`."""

        return {column: getattr(self, column) for column in STORE_COLUMNS}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MetadataRecord":
        known = {field.name for field in fields(cls)}
        values = {key: value for key, value in row.items() if key in known}
        return cls(**values)
