# === NAVMAP v1 ===
# {
#   "module": "OntologyIndex.net",
#   "purpose": "HTTPX + Hishel response cache and on-disk RDF file cache shared by extractors",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "errors", "name": "Error classification", "anchor": "ERR", "kind": "helpers"},
#     {"id": "api", "name": "HarvestCache", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTP access for extractors: cached API responses and cached file downloads.

Two caches with different lifetimes live behind :class:`HarvestCache`:

* registry API responses are cached per namespace by Hishel with a time-based
  expiry, so re-running a harvest shortly after a previous one does not hammer
  the registries;
* downloaded RDF files are stored under a filename derived from their URL and
  never expire.  The first caller downloads the file and every later caller
  reads the local copy.

One instance is built per run and handed to every extractor.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import re
import ssl
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Union

import certifi
import httpx
from hishel import CacheTransport, Controller, FileStorage

from .errors import SourceError, TransientSourceError
from .settings import HttpConfiguration

__all__ = ["HarvestCache", "classify_http_error", "sanitize_url_to_filename"]

LOGGER = logging.getLogger(__name__)

_FILENAME_PATTERN = re.compile(r"[^a-z0-9\-_]", re.IGNORECASE)
_MAX_FILENAME_LENGTH = 200
_CHUNK_SIZE = 1 << 16

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _controller() -> Controller:
    return Controller(
        cacheable_methods=["GET"],
        cacheable_status_codes=[200, 203, 300, 301, 308],
        cache_private=True,
        allow_heuristics=False,
        force_cache=True,
    )


def _timeout_for(config: HttpConfiguration) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.timeout_sec,
        write=config.timeout_sec,
        pool=config.connect_timeout_sec,
    )


def _response_hook(response: httpx.Response) -> None:
    response.raise_for_status()
    LOGGER.debug(
        "http-response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
        },
    )


def sanitize_url_to_filename(url: str) -> str:
    """Return the cache filename for ``url``: every non ``[a-z0-9-_]`` char becomes ``_``."""

    name = _FILENAME_PATTERN.sub("_", url)
    if len(name) > _MAX_FILENAME_LENGTH:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        name = f"{name[: _MAX_FILENAME_LENGTH - 17]}_{digest}"
    return name


# --- Error classification -------------------------------------------------------


def classify_http_error(
    exc: httpx.HTTPError, url: str, transient_status_codes: Iterable[int]
) -> SourceError:
    """Map an HTTPX exception onto :class:`SourceError` or :class:`TransientSourceError`."""

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = f"HTTP {status} for {url}"
        if status in set(transient_status_codes):
            return TransientSourceError(message, url=url, status_code=status)
        return SourceError(message, url=url, status_code=status)
    if isinstance(exc, httpx.TimeoutException):
        return TransientSourceError(f"Timeout while requesting {url}: {exc}", url=url)
    if isinstance(exc, httpx.TransportError):
        return TransientSourceError(f"Connection to {url} failed: {exc}", url=url)
    return SourceError(f"Request to {url} failed: {exc}", url=url)


# --- Public API ----------------------------------------------------------------


class HarvestCache:
    """Cached HTTP access shared by all extractors of one run."""

    def __init__(
        self,
        config: Optional[HttpConfiguration] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config or HttpConfiguration()
        self.cache_dir = self.config.resolved_cache_dir()
        self.files_dir = self.config.resolved_files_dir()
        self._transport = transport
        self._verify: Union[ssl.SSLContext, bool] = (
            _build_ssl_context() if self.config.verify_ssl else False
        )
        self._clients: Dict[str, httpx.Client] = {}
        self._download_client: Optional[httpx.Client] = None

    def _inner_transport(self) -> httpx.BaseTransport:
        if self._transport is not None:
            return self._transport
        return httpx.HTTPTransport(retries=0, verify=self._verify)

    def _new_client(self, transport: httpx.BaseTransport) -> httpx.Client:
        return httpx.Client(
            transport=transport,
            timeout=_timeout_for(self.config),
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
            headers={"User-Agent": self.config.user_agent},
            event_hooks={"response": [_response_hook]},
        )

    def _client_for(self, namespace: str) -> httpx.Client:
        client = self._clients.get(namespace)
        if client is None:
            if self.config.cache_ttl_sec > 0:
                storage_dir = self.cache_dir / namespace
                storage_dir.mkdir(parents=True, exist_ok=True)
                transport: httpx.BaseTransport = CacheTransport(
                    transport=self._inner_transport(),
                    storage=FileStorage(base_path=storage_dir, ttl=self.config.cache_ttl_sec),
                    controller=_controller(),
                )
            else:
                transport = self._inner_transport()
            client = self._new_client(transport)
            self._clients[namespace] = client
        return client

    @contextlib.contextmanager
    def _translate_errors(self, url: str) -> Iterator[None]:
        try:
            yield
        except httpx.HTTPError as exc:
            raise classify_http_error(exc, url, self.config.transient_status_codes) from exc

    def fetch_cached(self, url: str, namespace: str) -> str:
        """Return the body of ``url``, served from the ``namespace`` cache while fresh."""

        with self._translate_errors(url):
            response = self._client_for(namespace).get(url)
        cache_hit = bool(response.extensions.get("from_cache"))
        LOGGER.debug(
            f"{url} ({'cache' if cache_hit else 'network'})",
            extra={"stage": "http", "url": url},
        )
        return response.text

    def fetch_json(self, url: str, namespace: str) -> object:
        text = self.fetch_cached(url, namespace)
        try:
            return json.loads(text)
        except ValueError as exc:
            raise SourceError(f"Response of {url} is not valid JSON: {exc}", url=url) from exc

    def file_path_for(self, url: str) -> Path:
        """Return where the download of ``url`` lives (or will live)."""

        return self.files_dir / sanitize_url_to_filename(url)

    def local_file_path_for(self, url: str) -> Path:
        """Return a local copy of ``url``, downloading it only if it is not cached yet."""

        target = self.file_path_for(url)
        if target.exists():
            LOGGER.debug(f"{url} >> {target.name} ==> CACHE used", extra={"stage": "download"})
            return target

        LOGGER.info(f"{url} >> {target.name} ==> DOWNLOAD REQUIRED", extra={"stage": "download"})
        target.parent.mkdir(parents=True, exist_ok=True)
        if self._download_client is None:
            self._download_client = self._new_client(self._inner_transport())

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name[:50]}.", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as handle, self._translate_errors(url):
                with self._download_client.stream("GET", url) as response:
                    for chunk in response.iter_bytes(_CHUNK_SIZE):
                        handle.write(chunk)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    def close(self) -> None:
        """Close every HTTP client owned by this cache."""

        for client in [*self._clients.values(), self._download_client]:
            if client is not None:
                with contextlib.suppress(Exception):
                    client.close()
        self._clients.clear()
        self._download_client = None

    def __enter__(self) -> HarvestCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
