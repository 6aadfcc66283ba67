# === NAVMAP v1 ===
# {
#   "module": "OntologyIndex.settings",
#   "purpose": "Configuration models, environment overrides, and data directories for harvesting",
#   "sections": [
#     {"id": "paths", "name": "Data directories", "anchor": "PATHS", "kind": "constants"},
#     {"id": "loggingconfiguration", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "databaseconfiguration", "name": "DatabaseConfiguration", "anchor": "class-databaseconfiguration", "kind": "class"},
#     {"id": "httpconfiguration", "name": "HttpConfiguration", "anchor": "class-httpconfiguration", "kind": "class"},
#     {"id": "parserconfiguration", "name": "ParserConfiguration", "anchor": "class-parserconfiguration", "kind": "class"},
#     {"id": "sourcesconfiguration", "name": "SourcesConfiguration", "anchor": "class-sourcesconfiguration", "kind": "class"},
#     {"id": "harvestconfig", "name": "HarvestConfig", "anchor": "class-harvestconfig", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and environment overrides for the ontology index harvester.

Settings are plain pydantic models so they can be constructed directly in tests,
loaded from an optional YAML file, and then adjusted by ``ONTOINDEX_*``
environment variables.  Data locations default to a pystow-managed directory
(``~/.data/ontology-index``) which holds the HTTP cache, downloaded RDF files,
unpacked archives, logs, and the DuckDB store.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pystow
import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

__all__ = [
    "DATA_ROOT",
    "CACHE_DIR",
    "LOG_DIR",
    "WORK_DIR",
    "DEFAULT_EXTRACTORS",
    "LoggingConfiguration",
    "DatabaseConfiguration",
    "HttpConfiguration",
    "ParserConfiguration",
    "SourcesConfiguration",
    "HarvestConfig",
    "EnvironmentOverrides",
    "apply_env_overrides",
    "build_config",
    "load_config",
]

LOGGER = logging.getLogger(__name__)

# --- Data directories ---------------------------------------------------------

DATA_ROOT: Path = pystow.join("ontology-index")
CACHE_DIR = DATA_ROOT / "cache"
LOG_DIR = DATA_ROOT / "logs"
WORK_DIR = DATA_ROOT / "var"

DEFAULT_EXTRACTORS = ["dbpedia_archivo", "lov", "ols", "bioportal", "sweet"]
DEFAULT_MANUAL_CSV = Path("manually-maintained-metadata-about-ontologies.csv")


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for harvesting runs."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSON log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class DatabaseConfiguration(BaseModel):
    """DuckDB settings for the temporary metadata index."""

    db_path: Optional[Path] = Field(
        default=None,
        description="Path to DuckDB file; defaults to ~/.data/ontology-index/temporary-index.duckdb",
    )
    readonly: bool = Field(default=False, description="Open database in read-only mode")
    threads: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of threads for query execution; None lets DuckDB decide",
    )
    memory_limit: Optional[str] = Field(
        default=None,
        description="Memory limit as string (e.g., '2GB'); None uses auto",
    )

    def resolved_path(self) -> Path:
        """Return the configured database path or the default under ``DATA_ROOT``."""

        if self.db_path is not None:
            return Path(self.db_path).expanduser()
        return DATA_ROOT / "temporary-index.duckdb"

    model_config = {"validate_assignment": True}


class HttpConfiguration(BaseModel):
    """Timeouts, redirects, and caching for registry requests and file downloads."""

    connect_timeout_sec: float = Field(default=5.0, gt=0, description="Timeout until connected")
    timeout_sec: float = Field(default=300.0, gt=0, description="Overall request timeout")
    max_redirects: int = Field(default=10, ge=0, le=50)
    cache_ttl_sec: int = Field(
        default=86400,
        ge=0,
        description="Lifetime of cached API responses; downloaded RDF files never expire",
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates against certifi")
    user_agent: str = Field(default="ontology-index/0.1 (+https://github.com/k00ni/govi)")
    transient_status_codes: List[int] = Field(
        default_factory=lambda: [403, 404, 500, 504],
        description="HTTP status codes that skip the current ontology instead of aborting",
    )
    cache_dir: Optional[Path] = Field(default=None, description="Root of the HTTP response cache")
    files_dir: Optional[Path] = Field(default=None, description="Directory for downloaded RDF files")

    @field_validator("transient_status_codes")
    @classmethod
    def validate_status_codes(cls, value: List[int]) -> List[int]:
        """Reject values that are not HTTP error status codes."""

        for code in value:
            if not 400 <= int(code) <= 599:
                raise ValueError(f"{code} is not an HTTP error status code")
        return sorted({int(code) for code in value})

    def resolved_cache_dir(self) -> Path:
        return Path(self.cache_dir) if self.cache_dir is not None else CACHE_DIR / "http"

    def resolved_files_dir(self) -> Path:
        if self.files_dir is not None:
            return Path(self.files_dir)
        return CACHE_DIR / "downloaded_rdf_files"

    model_config = {"validate_assignment": True}


class ParserConfiguration(BaseModel):
    """Limits and external tooling used when turning downloads into graphs."""

    max_triples: int = Field(
        default=40000,
        gt=0,
        description="Only the first N triples of a file are inspected; large ontologies are truncated",
    )
    rapper_binary: str = Field(default="rapper", description="Executable used as fallback parser")
    rapper_timeout_sec: int = Field(default=600, gt=0)
    min_fallback_output_bytes: int = Field(
        default=16,
        ge=0,
        description="Fallback output smaller than this is treated as a failed parse",
    )

    model_config = {"validate_assignment": True}


class SourcesConfiguration(BaseModel):
    """Credentials and local inputs required by individual extractors."""

    bioportal_api_key: Optional[SecretStr] = Field(default=None)
    bioportal_api_key_file: Optional[Path] = Field(
        default=None,
        description="Plain-text file whose first line is the BioPortal API key",
    )
    manual_csv_path: Path = Field(default=DEFAULT_MANUAL_CSV)
    work_dir: Optional[Path] = Field(
        default=None, description="Scratch directory for unpacked dumps and archives"
    )

    def resolved_work_dir(self) -> Path:
        return Path(self.work_dir) if self.work_dir is not None else WORK_DIR

    def resolve_bioportal_api_key(self) -> Optional[str]:
        """Return the BioPortal key from settings or the key file, if any."""

        if self.bioportal_api_key is not None:
            value = self.bioportal_api_key.get_secret_value().strip()
            if value:
                return value
        key_file = self.bioportal_api_key_file
        if key_file is not None:
            path = Path(key_file).expanduser()
            if not path.exists():
                raise ConfigurationError(f"BioPortal API key file not found: {path}")
            for line in path.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    return line.strip()
        return None

    model_config = {"validate_assignment": True}


class HarvestConfig(BaseModel):
    """Top-level configuration for one harvesting run."""

    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    database: DatabaseConfiguration = Field(default_factory=DatabaseConfiguration)
    http: HttpConfiguration = Field(default_factory=HttpConfiguration)
    parser: ParserConfiguration = Field(default_factory=ParserConfiguration)
    sources: SourcesConfiguration = Field(default_factory=SourcesConfiguration)
    output_dir: Path = Field(default=Path("."), description="Directory receiving index.csv/jsonl")
    extractors: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTRACTORS))
    write_jsonl: bool = Field(default=True)

    @field_validator("extractors")
    @classmethod
    def validate_extractors(cls, value: List[str]) -> List[str]:
        """Ensure every extractor name is known; order is preserved."""

        unknown = [name for name in value if name not in DEFAULT_EXTRACTORS]
        if unknown:
            raise ValueError(
                f"unknown extractor(s) {unknown}; expected a subset of {DEFAULT_EXTRACTORS}"
            )
        return list(dict.fromkeys(value))

    model_config = {"validate_assignment": True, "extra": "forbid"}


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    log_level: Optional[str] = None
    db_path: Optional[Path] = None
    timeout_sec: Optional[float] = None
    connect_timeout_sec: Optional[float] = None
    cache_ttl_sec: Optional[int] = None
    bioportal_api_key: Optional[SecretStr] = None
    output_dir: Optional[Path] = None
    rapper_binary: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="ONTOINDEX_", case_sensitive=False, extra="ignore")


def apply_env_overrides(config: HarvestConfig) -> HarvestConfig:
    """Mutate ``config`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    targets = {
        "log_level": (config.logging, "level"),
        "db_path": (config.database, "db_path"),
        "timeout_sec": (config.http, "timeout_sec"),
        "connect_timeout_sec": (config.http, "connect_timeout_sec"),
        "cache_ttl_sec": (config.http, "cache_ttl_sec"),
        "bioportal_api_key": (config.sources, "bioportal_api_key"),
        "output_dir": (config, "output_dir"),
        "rapper_binary": (config.parser, "rapper_binary"),
    }
    for name, (section, attribute) in targets.items():
        value = getattr(env, name)
        if value is None:
            continue
        try:
            setattr(section, attribute, value)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid value for ONTOINDEX_{name.upper()}: {exc}") from exc
        shown = "***masked***" if isinstance(value, SecretStr) else value
        LOGGER.info("Config overridden: %s=%s", name, shown, extra={"stage": "config"})
    return config


def build_config(raw: Optional[Mapping[str, Any]] = None, *, use_env: bool = True) -> HarvestConfig:
    """Materialise a :class:`HarvestConfig` from a raw mapping."""

    try:
        config = HarvestConfig.model_validate(dict(raw or {}))
    except PydanticValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {messages}") from exc
    if use_env:
        apply_env_overrides(config)
    return config


def load_raw_yaml(config_path: Path) -> Dict[str, Any]:
    """Read a YAML configuration file and return its top-level mapping."""

    path = Path(config_path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file '{path}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return dict(data)


def load_config(config_path: Optional[Path] = None, *, use_env: bool = True) -> HarvestConfig:
    """Load the optional YAML file at ``config_path`` and apply environment overrides."""

    raw = load_raw_yaml(config_path) if config_path is not None else {}
    return build_config(raw, use_env=use_env)
