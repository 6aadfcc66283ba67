"""Structured logging helpers shared across harvesting components."""

from __future__ import annotations

import gzip
import json
import logging
import os
import re
import shutil
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .settings import LOG_DIR

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

ROOT_LOGGER_NAME = "OntologyIndex"
_MASK = "***masked***"
_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_QUERY_SECRET_PATTERN = re.compile(r"(?i)\b(apikey|api_key|token)=([^&\s\"']+)")
_STRUCTURED_FIELDS = ("stage", "extractor", "ontology_iri", "url", "status")


def _mask_string(value: str) -> str:
    return _QUERY_SECRET_PATTERN.sub(lambda match: f"{match.group(1)}={_MASK}", value)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with secret fields and ``apikey=`` query values masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint is not None and key_hint in _SENSITIVE_KEYS and value is not None:
            return _MASK
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(_mask_value(item) for item in value)
        if isinstance(value, str):
            return _mask_string(value)
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for harvesting runs."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with harvester-specific fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _STRUCTURED_FIELDS:
            payload[field] = getattr(record, field, None)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


class _MaskingConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return _mask_string(super().format(record))


def _age_in_days(path: Path, now: float) -> float:
    return (now - path.stat().st_mtime) / 86400


def _sweep_log_dir(log_dir: Path, retention_days: int) -> None:
    """Gzip run logs older than ``retention_days``; drop archives twice that old."""

    now = time.time()
    for run_log in sorted(log_dir.glob("ontoindex-*.jsonl")):
        if _age_in_days(run_log, now) <= retention_days:
            continue
        archive = run_log.parent / f"{run_log.name}.gz"
        with run_log.open("rb") as plain, gzip.open(archive, "wb") as packed:
            shutil.copyfileobj(plain, packed)
        run_log.unlink()
    for archive in sorted(log_dir.glob("ontoindex-*.jsonl.gz")):
        if _age_in_days(archive, now) > 2 * retention_days:
            archive.unlink()


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure harvester logging: stdout narration plus rotating JSON lines on disk."""

    if log_dir is not None:
        resolved_dir = Path(log_dir)
    else:
        env_value = os.environ.get("ONTOINDEX_LOG_DIR", "").strip()
        resolved_dir = Path(env_value) if env_value else LOG_DIR
    resolved_dir.mkdir(parents=True, exist_ok=True)
    _sweep_log_dir(resolved_dir, retention_days)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_ontoindex_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) in (
                sys.stdout,
                sys.stderr,
            ):
                continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(_MaskingConsoleFormatter("%(levelname)s: %(message)s"))
    stream_handler._ontoindex_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        resolved_dir / f"ontoindex-{today}.jsonl",
        maxBytes=int(max_log_size_mb * 1024 * 1024),
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._ontoindex_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
