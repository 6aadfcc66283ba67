"""Logging helper coverage.

Validates masking of API keys, the structured JSON log format, handler
replacement on repeated setup, and compression of stale log files.
"""

import gzip
import json
import logging
import os
import time
from pathlib import Path

from OntologyIndex.logging_utils import JSONFormatter, mask_sensitive_data, setup_logging


def _cleanup_logger(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _file_handler(logger):
    for handler in logger.handlers:
        if hasattr(handler, "baseFilename"):
            return handler
    raise AssertionError("expected a file handler")


def test_mask_sensitive_data_masks_keys_and_query_values():
    payload = {
        "api_key": "secret",
        "message": "GET https://data.bioontology.org/ontologies?include=all&apikey=abc123",
        "nested": {"Token": "x", "plain": "visible"},
        "items": ["https://example.org/?apikey=zzz&f=1"],
    }
    masked = mask_sensitive_data(payload)
    assert masked["api_key"] == "***masked***"
    assert masked["message"].endswith("apikey=***masked***")
    assert "abc123" not in masked["message"]
    assert masked["nested"] == {"Token": "***masked***", "plain": "visible"}
    assert masked["items"] == ["https://example.org/?apikey=***masked***&f=1"]


def test_json_formatter_carries_structured_fields():
    record = logging.LogRecord(
        name="OntologyIndex.extractors.base",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="stored %s",
        args=("Gene Ontology",),
        exc_info=None,
    )
    record.stage = "extract"
    record.extractor = "ols"
    record.ontology_iri = "http://purl.obolibrary.org/obo/go.owl"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "stored Gene Ontology"
    assert payload["level"] == "INFO"
    assert payload["stage"] == "extract"
    assert payload["extractor"] == "ols"
    assert payload["ontology_iri"] == "http://purl.obolibrary.org/obo/go.owl"
    assert payload["url"] is None
    assert payload["timestamp"].endswith("Z")


def test_setup_logging_emits_structured_json(tmp_path):
    logger = setup_logging(level="DEBUG", retention_days=1, max_log_size_mb=1, log_dir=tmp_path)
    try:
        logging.getLogger("OntologyIndex.net").info(
            "fetching https://x.org/?apikey=secret-key",
            extra={"stage": "http", "url": "https://x.org/?apikey=secret-key"},
        )
        for handler in logger.handlers:
            handler.flush()
        log_files = sorted(tmp_path.glob("ontoindex-*.jsonl"))
        assert log_files, "expected a JSON log file"
        record = json.loads(log_files[0].read_text(encoding="utf-8").strip().splitlines()[-1])
        assert record["logger"] == "OntologyIndex.net"
        assert record["stage"] == "http"
        assert "secret-key" not in record["message"]
        assert record["url"] == "https://x.org/?apikey=***masked***"
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
    finally:
        _cleanup_logger(logger)


def test_setup_logging_replaces_its_own_handlers(tmp_path):
    first = setup_logging(log_dir=tmp_path / "a")
    second = setup_logging(log_dir=tmp_path / "b")
    try:
        assert first is second
        managed = [h for h in second.handlers if getattr(h, "_ontoindex_managed", False)]
        assert len(managed) == 2
        assert Path(_file_handler(second).baseFilename).parent == tmp_path / "b"
    finally:
        _cleanup_logger(second)


def test_setup_logging_reads_env_log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("ONTOINDEX_LOG_DIR", str(tmp_path / "env-logs"))
    logger = setup_logging()
    try:
        assert Path(_file_handler(logger).baseFilename).parent == tmp_path / "env-logs"
    finally:
        _cleanup_logger(logger)


def test_stale_logs_are_compressed(tmp_path):
    stale = tmp_path / "ontoindex-20000101.jsonl"
    stale.write_text('{"message": "old"}\n', encoding="utf-8")
    past = time.time() - 10 * 86400
    os.utime(stale, (past, past))

    logger = setup_logging(retention_days=1, log_dir=tmp_path)
    try:
        archive = tmp_path / "ontoindex-20000101.jsonl.gz"
        assert not stale.exists()
        with gzip.open(archive, "rt", encoding="utf-8") as handle:
            assert json.loads(handle.read())["message"] == "old"
    finally:
        _cleanup_logger(logger)
