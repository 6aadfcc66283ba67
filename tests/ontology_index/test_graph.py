"""Tests for RDF loading, format sniffing, and the parser fallback chain."""

import subprocess
from pathlib import Path

import pytest

from OntologyIndex import graph as graph_module
from OntologyIndex.errors import ParseError
from OntologyIndex.graph import (
    Graph,
    RapperParser,
    RdflibParser,
    expand_curie,
    guess_format,
    load_graph,
)
from OntologyIndex.settings import ParserConfiguration

TURTLE = """\
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix dcterms: <http://purl.org/dc/terms/> .
@prefix skos: <http://www.w3.org/2004/02/skos/core#> .

<http://example.org/onto> a owl:Ontology ;
    rdfs:label "Example Ontology"@en, "Beispiel"@de ;
    dcterms:creator _:someone ;
    dcterms:title "Title via dcterms" .

<http://example.org/onto#Thing> a owl:Class ;
    skos:prefLabel "Thing" .
"""

NTRIPLES = (
    '<http://example.org/a> <http://www.w3.org/2000/01/rdf-schema#label> "A" .\n'
    "<http://example.org/a> <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> "
    "<http://www.w3.org/2002/07/owl#Ontology> .\n"
)


@pytest.fixture
def turtle_file(tmp_path) -> Path:
    path = tmp_path / "onto.ttl"
    path.write_text(TURTLE, encoding="utf-8")
    return path


class TestExpandCurie:
    def test_known_prefixes(self):
        assert expand_curie("dc:creator") == "http://purl.org/dc/terms/creator"
        assert expand_curie("dc11:title") == "http://purl.org/dc/elements/1.1/title"
        assert expand_curie("schema:author") == "http://schema.org/author"

    def test_full_iri_passes_through(self):
        assert expand_curie("http://example.org/x") == "http://example.org/x"

    def test_unknown_prefix_passes_through(self):
        assert expand_curie("ex:thing") == "ex:thing"


class TestGraph:
    """Lookups on a parsed graph."""

    def test_len_and_subjects(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()])
        assert len(graph) == 7
        assert graph.has_subject("http://example.org/onto")
        assert not graph.has_subject("http://example.org/other")

    def test_property_values_by_language(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()])
        assert graph.get_property_values("http://example.org/onto", "rdfs:label", "de") == [
            "Beispiel"
        ]
        assert sorted(graph.get_property_values("http://example.org/onto", "rdfs:label")) == [
            "Beispiel",
            "Example Ontology",
        ]

    def test_blank_nodes_rendered_with_prefix(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()])
        (creator,) = graph.get_property_values("http://example.org/onto", "dc:creator")
        assert creator.startswith("_:")

    def test_label_follows_title_property_order(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()])
        assert graph.get_label("http://example.org/onto", "en") == "Example Ontology"
        assert graph.get_label("http://example.org/onto#Thing") == "Thing"
        assert graph.get_label("http://example.org/missing") is None

    def test_instances_of_type(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()])
        assert graph.get_instances_of_type("owl:Ontology") == ["http://example.org/onto"]
        assert graph.has_instances_of_type("owl:Class")
        assert not graph.has_instances_of_type("skos:Concept")

    def test_empty_graph(self):
        graph = Graph()
        assert len(graph) == 0
        assert graph.get_label("http://x") is None


class TestGuessFormat:
    @pytest.mark.parametrize(
        "data, expected",
        [
            (b'{"@context": {}}', "json-ld"),
            (b'[{"@id": "x"}]', "json-ld"),
            (b'<?xml version="1.0"?>\n<rdf:RDF xmlns:rdf="x"></rdf:RDF>', "rdfxml"),
            (TURTLE.encode("utf-8"), "turtle"),
            (b"\xef\xbb\xbf@prefix ex: <http://ex/> .", "turtle"),
            (NTRIPLES.encode("utf-8"), "ntriples"),
            (b"<html><body>Not found</body></html>", None),
            (b"", None),
        ],
    )
    def test_sniffing(self, data, expected):
        assert guess_format(data) == expected


class FailingParser:
    name = "failing"

    def __init__(self):
        self.calls = 0

    def parse(self, path, fmt, max_triples):
        self.calls += 1
        raise ParseError("always fails", parser=self.name, path=path)


class TestLoadGraph:
    """Strategy chain and triple cap."""

    def test_first_successful_strategy_wins(self, turtle_file):
        failing = FailingParser()
        graph = load_graph(turtle_file, "turtle", strategies=[failing, RdflibParser()])
        assert failing.calls == 1
        assert len(graph) == 7

    def test_all_strategies_failing_yields_empty_graph(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[FailingParser(), FailingParser()])
        assert len(graph) == 0

    def test_broken_file_yields_empty_graph(self, tmp_path):
        path = tmp_path / "broken.ttl"
        path.write_text("@prefix : <http://x/> .\n:a :b", encoding="utf-8")
        assert len(load_graph(path, "turtle", strategies=[RdflibParser()])) == 0

    def test_max_triples_caps_graph(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()], max_triples=3)
        assert len(graph) == 3

    def test_unlimited_when_cap_is_none(self, turtle_file):
        graph = load_graph(turtle_file, "turtle", strategies=[RdflibParser()], max_triples=None)
        assert len(graph) == 7

    def test_format_sniffed_when_not_given(self, tmp_path):
        path = tmp_path / "download"
        path.write_text(NTRIPLES, encoding="utf-8")
        graph = load_graph(path, strategies=[RdflibParser()])
        assert graph.get_label("http://example.org/a") == "A"


class TestRapperParser:
    """External-process fallback, with ``rapper`` itself faked."""

    def _fake_run(self, output: str, calls):
        def _run(cmd, check, stdout, stderr, timeout):
            calls.append(cmd)
            stdout.write(output.encode("utf-8"))
            return subprocess.CompletedProcess(cmd, 0)

        return _run

    def test_missing_binary(self, turtle_file, monkeypatch):
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: None)
        with pytest.raises(ParseError, match="not found"):
            RapperParser().parse(turtle_file, "turtle", 100)

    def test_converts_and_reads_ntriples(self, turtle_file, monkeypatch):
        calls = []
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", self._fake_run(NTRIPLES, calls))

        triples = RapperParser().parse(turtle_file, "turtle", None)

        assert len(triples) == 2
        assert calls[0][:5] == ["/usr/bin/rapper", "-q", "-i", "turtle", "-o"]
        assert calls[0][-1] == str(turtle_file)

    def test_guesses_syntax_without_format(self, turtle_file, monkeypatch):
        calls = []
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", self._fake_run(NTRIPLES, calls))
        RapperParser().parse(turtle_file, None, None)
        assert "-g" in calls[0]

    def test_reads_only_first_lines(self, turtle_file, monkeypatch):
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", self._fake_run(NTRIPLES, []))
        assert len(RapperParser().parse(turtle_file, "turtle", 1)) == 1

    def test_too_small_output_is_failure(self, turtle_file, monkeypatch):
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", self._fake_run("\n", []))
        with pytest.raises(ParseError, match="no usable output"):
            RapperParser(ParserConfiguration(min_fallback_output_bytes=16)).parse(
                turtle_file, "turtle", None
            )

    def test_process_error_is_parse_error(self, turtle_file, monkeypatch):
        def _fail(cmd, check, stdout, stderr, timeout):
            raise subprocess.CalledProcessError(1, cmd, stderr=b"rapper: Error - syntax")

        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", _fail)
        with pytest.raises(ParseError, match="syntax"):
            RapperParser().parse(turtle_file, "turtle", None)

    def test_fallback_used_when_rdflib_fails(self, tmp_path, monkeypatch):
        path = tmp_path / "weird.ttl"
        path.write_text("this is not turtle at all", encoding="utf-8")
        monkeypatch.setattr(graph_module.shutil, "which", lambda name: "/usr/bin/rapper")
        monkeypatch.setattr(graph_module.subprocess, "run", self._fake_run(NTRIPLES, []))

        graph = load_graph(path, "turtle", strategies=[RdflibParser(), RapperParser()])

        assert graph.has_instances_of_type("owl:Ontology")
