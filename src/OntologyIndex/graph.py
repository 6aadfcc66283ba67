# === NAVMAP v1 ===
# {
#   "module": "OntologyIndex.graph",
#   "purpose": "Read RDF files into a bounded triple list with rdflib and a rapper fallback",
#   "sections": [
#     {"id": "namespaces", "name": "Prefix table", "anchor": "NS", "kind": "constants"},
#     {"id": "graph", "name": "Graph", "anchor": "class-graph", "kind": "class"},
#     {"id": "sniffing", "name": "guess_format", "anchor": "function-guess-format", "kind": "function"},
#     {"id": "parsers", "name": "Parser strategies", "anchor": "PARSE", "kind": "api"},
#     {"id": "load-graph", "name": "load_graph", "anchor": "function-load-graph", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Turn downloaded RDF files into small, queryable triple lists.

Extractors only need a handful of literal and IRI lookups on the ontology
header, so a file is read into at most ``max_triples`` triples and wrapped in a
:class:`Graph` with a subject index.  Parsing walks a list of strategies:
rdflib is tried first and the ``rapper`` command line tool is the fallback.
When every strategy fails the caller gets an empty graph rather than an
exception, so one broken file only skips one ontology.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
from collections import defaultdict
from itertools import islice
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import rdflib
from rdflib.term import BNode, Literal, Node, URIRef

from .errors import ParseError
from .settings import ParserConfiguration

__all__ = [
    "PREFIXES",
    "TITLE_PROPERTIES",
    "Graph",
    "RdfParser",
    "RdflibParser",
    "RapperParser",
    "default_strategies",
    "expand_curie",
    "guess_format",
    "load_graph",
]

LOGGER = logging.getLogger(__name__)

Triple = Tuple[Node, Node, Node]

RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"

# EasyRdf conventions: ``dc`` is DCMI terms, ``dc11`` the legacy element set.
PREFIXES: Dict[str, str] = {
    "dc": "http://purl.org/dc/terms/",
    "dcterms": "http://purl.org/dc/terms/",
    "dc11": "http://purl.org/dc/elements/1.1/",
    "dcat": "http://www.w3.org/ns/dcat#",
    "foaf": "http://xmlns.com/foaf/0.1/",
    "owl": "http://www.w3.org/2002/07/owl#",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "rdfs": "http://www.w3.org/2000/01/rdf-schema#",
    "schema": "http://schema.org/",
    "skos": "http://www.w3.org/2004/02/skos/core#",
    "vann": "http://purl.org/vocab/vann/",
    "voaf": "http://purl.org/vocommons/voaf#",
}

TITLE_PROPERTIES: Tuple[str, ...] = (
    "skos:prefLabel",
    "rdfs:label",
    "foaf:name",
    "dcterms:title",
    "dc11:title",
)

# format name -> (rdflib parser name, rapper input syntax)
_FORMATS: Dict[str, Tuple[str, Optional[str]]] = {
    "turtle": ("turtle", "turtle"),
    "n3": ("n3", "turtle"),
    "ntriples": ("nt", "ntriples"),
    "rdfxml": ("xml", "rdfxml"),
    "json-ld": ("json-ld", None),
}

_NTRIPLES_LINE = re.compile(r"^\s*(<[^>]*>|_:\S+)\s+<[^>]*>\s+.+\.\s*$")


def expand_curie(value: str) -> str:
    """Expand ``prefix:local`` using :data:`PREFIXES`; full IRIs pass through."""

    prefix, sep, local = value.partition(":")
    if sep and prefix in PREFIXES and not local.startswith("//"):
        return PREFIXES[prefix] + local
    return value


def _term_value(term: Node) -> str:
    if isinstance(term, BNode):
        return f"_:{term}"
    return str(term)


class Graph:
    """Bounded list of triples with lookups keyed by subject IRI."""

    def __init__(self, triples: Iterable[Triple] = ()) -> None:
        self._triples: List[Triple] = list(triples)
        self._by_subject: Dict[str, List[Tuple[str, Node]]] = defaultdict(list)
        for subject, predicate, obj in self._triples:
            self._by_subject[_term_value(subject)].append((str(predicate), obj))

    def __len__(self) -> int:
        return len(self._triples)

    def __iter__(self):
        return iter(self._triples)

    def has_subject(self, uri: str) -> bool:
        return expand_curie(uri) in self._by_subject

    def get_property_values(
        self, subject: str, prop: str, lang: Optional[str] = None
    ) -> List[str]:
        """Return object values of ``subject prop ?o``.

        Args:
            subject: Subject IRI (or CURIE).
            prop: Predicate IRI or CURIE such as ``dc:creator``.
            lang: When given, only literals tagged with this language match.

        Returns:
            List[str]: Values in file order; blank nodes are rendered as ``_:id``.
        """

        predicate = expand_curie(prop)
        values: List[str] = []
        for candidate, obj in self._by_subject.get(expand_curie(subject), ()):
            if candidate != predicate:
                continue
            if lang is not None and not (isinstance(obj, Literal) and obj.language == lang):
                continue
            values.append(_term_value(obj))
        return values

    def get_label(self, subject: str, lang: Optional[str] = None) -> Optional[str]:
        """Return the first title-like literal of ``subject`` following :data:`TITLE_PROPERTIES`."""

        for prop in TITLE_PROPERTIES:
            values = self.get_property_values(subject, prop, lang)
            if values:
                return values[0]
        return None

    def get_instances_of_type(self, rdf_type: str) -> List[str]:
        target = expand_curie(rdf_type)
        result: List[str] = []
        for subject, predicate, obj in self._triples:
            if str(predicate) == RDF_TYPE and isinstance(obj, URIRef) and str(obj) == target:
                value = _term_value(subject)
                if value not in result:
                    result.append(value)
        return result

    def has_instances_of_type(self, rdf_type: str) -> bool:
        target = expand_curie(rdf_type)
        return any(
            str(predicate) == RDF_TYPE and str(obj) == target
            for _, predicate, obj in self._triples
        )


def guess_format(data: bytes) -> Optional[str]:
    """Sniff the RDF syntax of a file from its first bytes.

    Returns one of ``json-ld``, ``rdfxml``, ``turtle``, ``ntriples`` or ``None``.
    """

    text = data.decode("utf-8", errors="replace").lstrip("\ufeff").lstrip()
    if not text:
        return None
    if text[0] in "{[":
        return "json-ld"
    if "<rdf:RDF" in text or "<owl:Ontology" in text or (
        text.startswith("<?xml") and "rdf" in text.lower()
    ):
        return "rdfxml"
    if re.search(r"^\s*(@prefix|@base|PREFIX\s|BASE\s)", text, re.MULTILINE | re.IGNORECASE):
        return "turtle"
    lines = [line for line in text.splitlines()[:20] if line.strip() and not line.startswith("#")]
    if lines and all(_NTRIPLES_LINE.match(line) for line in lines[:-1] or lines):
        return "ntriples"
    if "<rdf:" in text:
        return "rdfxml"
    return None


def sniff_file_format(path: Path, size: int = 100 * 1024) -> Optional[str]:
    with Path(path).open("rb") as handle:
        return guess_format(handle.read(size))


class RdfParser(Protocol):
    """A way of turning a local RDF file into triples."""

    name: str

    def parse(self, path: Path, fmt: Optional[str], max_triples: Optional[int]) -> List[Triple]:
        ...


class RdflibParser:
    """Primary strategy: parse the whole file with rdflib and keep the first triples."""

    name = "rdflib"

    def parse(self, path: Path, fmt: Optional[str], max_triples: Optional[int]) -> List[Triple]:
        fmt = fmt or sniff_file_format(path)
        if fmt is not None and fmt not in _FORMATS:
            raise ParseError(f"Unsupported RDF format {fmt!r}", parser=self.name, path=path)
        rdflib_format = _FORMATS[fmt][0] if fmt else None
        graph = rdflib.Graph()
        try:
            graph.parse(source=str(path), format=rdflib_format)
        except Exception as exc:  # pylint: disable=broad-except
            raise ParseError(
                f"rdflib could not parse {path.name}: {exc}", parser=self.name, path=path
            ) from exc
        return list(islice(iter(graph), max_triples))


class RapperParser:
    """Fallback strategy: convert the file to N-Triples with ``rapper`` and read it back.

    rapper streams, so even files rdflib chokes on can be converted; only the
    first ``max_triples`` lines of the converted output are read.
    """

    name = "rapper"

    def __init__(self, config: Optional[ParserConfiguration] = None) -> None:
        self.config = config or ParserConfiguration()

    def _command(self, binary: str, path: Path, fmt: Optional[str]) -> List[str]:
        syntax = _FORMATS.get(fmt, (None, None))[1] if fmt else None
        input_args = ["-i", syntax] if syntax else ["-g"]
        return [binary, "-q", *input_args, "-o", "ntriples", str(path)]

    def parse(self, path: Path, fmt: Optional[str], max_triples: Optional[int]) -> List[Triple]:
        binary = shutil.which(self.config.rapper_binary)
        if binary is None:
            raise ParseError(
                f"{self.config.rapper_binary} executable not found", parser=self.name, path=path
            )

        with tempfile.TemporaryDirectory(prefix="ontoindex-rapper-") as tmp_dir:
            output_path = Path(tmp_dir) / "output.nt"
            cmd = self._command(binary, path, fmt)
            LOGGER.info(
                f"trying rapper (format = {fmt or 'guess'}) for {path.name}",
                extra={"stage": "parse"},
            )
            try:
                with output_path.open("wb") as output:
                    subprocess.run(
                        cmd,
                        check=True,
                        stdout=output,
                        stderr=subprocess.PIPE,
                        timeout=self.config.rapper_timeout_sec,
                    )
            except subprocess.CalledProcessError as exc:
                stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
                raise ParseError(
                    f"rapper failed on {path.name}: {stderr or exc}", parser=self.name, path=path
                ) from exc
            except (subprocess.TimeoutExpired, OSError) as exc:
                raise ParseError(
                    f"rapper failed on {path.name}: {exc}", parser=self.name, path=path
                ) from exc

            if output_path.stat().st_size < self.config.min_fallback_output_bytes:
                raise ParseError(
                    f"rapper produced no usable output for {path.name}",
                    parser=self.name,
                    path=path,
                )
            triples = self._read_ntriples(output_path, max_triples)

        if not triples:
            raise ParseError(
                f"rapper produced no triples for {path.name}", parser=self.name, path=path
            )
        return triples

    def _read_ntriples(self, path: Path, max_triples: Optional[int]) -> List[Triple]:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            lines = list(islice(handle, max_triples))
        graph = rdflib.Graph()
        try:
            graph.parse(data="".join(lines), format="nt")
        except Exception as exc:  # pylint: disable=broad-except
            raise ParseError(
                f"rapper output for {path.name} is not valid N-Triples: {exc}",
                parser=self.name,
                path=path,
            ) from exc
        return list(graph)


def default_strategies(config: Optional[ParserConfiguration] = None) -> List[RdfParser]:
    return [RdflibParser(), RapperParser(config)]


def load_graph(
    path: Path,
    fmt: Optional[str] = None,
    *,
    strategies: Optional[Sequence[RdfParser]] = None,
    max_triples: Optional[int] = 40000,
) -> Graph:
    """Parse ``path`` with the first strategy that succeeds; empty graph if none does.

    Args:
        path: Local RDF file.
        fmt: Format hint (``turtle``, ``n3``, ``ntriples``, ``rdfxml``, ``json-ld``);
            ``None`` lets each strategy sniff or guess.
        strategies: Parsers tried in order; defaults to rdflib then rapper.
        max_triples: Upper bound of triples kept; ``None`` keeps everything.

    Returns:
        Graph: Parsed triples, or an empty graph when every strategy failed.
    """

    for strategy in strategies if strategies is not None else default_strategies():
        try:
            return Graph(strategy.parse(Path(path), fmt, max_triples))
        except ParseError as exc:
            LOGGER.warning(
                f"{exc.parser} failed with ERROR: {exc}",
                extra={"stage": "parse", "url": str(path)},
            )
    LOGGER.warning(
        f"No parser could read {Path(path).name}; using empty graph", extra={"stage": "parse"}
    )
    return Graph()
