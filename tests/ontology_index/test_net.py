"""Tests for the HTTP response cache and the downloaded-file cache."""

import httpx
import pytest

from OntologyIndex.errors import SourceError, TransientSourceError
from OntologyIndex.net import HarvestCache, classify_http_error, sanitize_url_to_filename
from OntologyIndex.settings import HttpConfiguration


class Recorder:
    """MockTransport handler that counts requests per URL."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        if route is None:
            return httpx.Response(404, text="not found")
        status, body = route
        return httpx.Response(status, content=body.encode("utf-8"))


def _cache(tmp_path, handler, **overrides):
    config = HttpConfiguration(
        cache_dir=tmp_path / "http", files_dir=tmp_path / "files", **overrides
    )
    return HarvestCache(config, transport=httpx.MockTransport(handler))


class TestSanitizeUrl:
    def test_non_word_characters_replaced(self):
        assert (
            sanitize_url_to_filename("https://example.org/a.ttl?x=1")
            == "https___example_org_a_ttl_x_1"
        )

    def test_long_names_are_hashed(self):
        name = sanitize_url_to_filename("https://example.org/" + "a" * 500)
        assert len(name) == 200

    def test_long_names_stay_distinct(self):
        base = "https://example.org/" + "a" * 500
        assert sanitize_url_to_filename(base + "1") != sanitize_url_to_filename(base + "2")


class TestClassifyHttpError:
    def _status_error(self, status):
        request = httpx.Request("GET", "https://x")
        response = httpx.Response(status, request=request)
        return httpx.HTTPStatusError("boom", request=request, response=response)

    @pytest.mark.parametrize("status", [403, 404, 500, 504])
    def test_transient_status_codes(self, status):
        error = classify_http_error(self._status_error(status), "https://x", [403, 404, 500, 504])
        assert isinstance(error, TransientSourceError)
        assert error.transient
        assert error.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 502])
    def test_other_status_codes_are_fatal(self, status):
        error = classify_http_error(self._status_error(status), "https://x", [403, 404, 500, 504])
        assert not isinstance(error, TransientSourceError)
        assert not error.transient

    def test_timeout_is_transient(self):
        error = classify_http_error(httpx.ReadTimeout("slow"), "https://x", [])
        assert isinstance(error, TransientSourceError)


class TestFetchCached:
    """Registry API responses."""

    def test_returns_body(self, tmp_path):
        handler = Recorder({"https://api.example/list": (200, '{"a": 1}')})
        with _cache(tmp_path, handler, cache_ttl_sec=0) as cache:
            assert cache.fetch_cached("https://api.example/list", "ns") == '{"a": 1}'
            assert cache.fetch_json("https://api.example/list", "ns") == {"a": 1}

    def test_responses_are_cached_per_namespace(self, tmp_path):
        handler = Recorder({"https://api.example/list": (200, "payload")})
        with _cache(tmp_path, handler, cache_ttl_sec=3600) as cache:
            cache.fetch_cached("https://api.example/list", "ns")
            assert cache.fetch_cached("https://api.example/list", "ns") == "payload"
        assert handler.calls == ["https://api.example/list"]
        assert (tmp_path / "http" / "ns").is_dir()

    def test_transient_status_raises_transient_error(self, tmp_path):
        handler = Recorder({"https://api.example/gone": (404, "gone")})
        with _cache(tmp_path, handler, cache_ttl_sec=0) as cache:
            with pytest.raises(TransientSourceError) as excinfo:
                cache.fetch_cached("https://api.example/gone", "ns")
        assert excinfo.value.status_code == 404

    def test_fatal_status_raises_source_error(self, tmp_path):
        handler = Recorder({"https://api.example/bad": (400, "bad request")})
        with _cache(tmp_path, handler, cache_ttl_sec=0) as cache:
            with pytest.raises(SourceError) as excinfo:
                cache.fetch_cached("https://api.example/bad", "ns")
        assert not excinfo.value.transient

    def test_connect_timeout_is_transient(self, tmp_path):
        handler = Recorder({"https://api.example/slow": httpx.ConnectTimeout("timeout")})
        with _cache(tmp_path, handler, cache_ttl_sec=0) as cache:
            with pytest.raises(TransientSourceError):
                cache.fetch_cached("https://api.example/slow", "ns")

    def test_invalid_json(self, tmp_path):
        handler = Recorder({"https://api.example/html": (200, "<html></html>")})
        with _cache(tmp_path, handler, cache_ttl_sec=0) as cache:
            with pytest.raises(SourceError, match="not valid JSON"):
                cache.fetch_json("https://api.example/html", "ns")


class TestLocalFilePath:
    """Downloaded RDF files: first writer creates the file, later callers reuse it."""

    def test_download_then_reuse(self, tmp_path):
        url = "https://files.example/onto.ttl"
        handler = Recorder({url: (200, "@prefix ex: <http://ex/> .")})
        with _cache(tmp_path, handler) as cache:
            first = cache.local_file_path_for(url)
            second = cache.local_file_path_for(url)
        assert first == second == tmp_path / "files" / sanitize_url_to_filename(url)
        assert first.read_text(encoding="utf-8") == "@prefix ex: <http://ex/> ."
        assert handler.calls == [url]

    def test_existing_file_never_expires(self, tmp_path):
        url = "https://files.example/onto.ttl"
        handler = Recorder({})
        cache = _cache(tmp_path, handler)
        target = cache.file_path_for(url)
        target.parent.mkdir(parents=True)
        target.write_text("cached", encoding="utf-8")
        assert cache.local_file_path_for(url).read_text(encoding="utf-8") == "cached"
        assert handler.calls == []
        cache.close()

    def test_failed_download_leaves_no_file(self, tmp_path):
        url = "https://files.example/missing.ttl"
        handler = Recorder({})
        with _cache(tmp_path, handler) as cache:
            with pytest.raises(TransientSourceError):
                cache.local_file_path_for(url)
            assert not cache.file_path_for(url).exists()
        assert list((tmp_path / "files").iterdir()) == []
