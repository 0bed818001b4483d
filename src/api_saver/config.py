"""Configuration management for the api-saver service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

_config_logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS: tuple[str, ...] = (
    "/api/admin/traffic",
    "/api/stats",
    "/socket.io",
    "/health",
)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)


class TelemetrySettings(BaseModel):
    enabled: bool = Field(default=True)
    service_name: str = Field(default="api-saver", min_length=1)
    log_dir: str = Field(default="./logs")
    log_file_prefix: str = Field(default="usage", min_length=1)
    ip_mode: Literal["raw", "mask", "hash"] = Field(default="raw")
    ip_hash_salt: str = Field(default="change-this-salt")
    max_body_bytes: int = Field(default=2048, ge=0, le=1024 * 1024)
    excluded_paths: tuple[str, ...] = Field(default=DEFAULT_EXCLUDED_PATHS)


class EnrichmentSettings(BaseModel):
    enabled: bool = Field(default=True)
    provider_url: str = Field(default="http://ip-api.com/json/{address}")
    ttl_seconds: float = Field(default=3600.0, gt=0)
    timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    max_entries: int | None = Field(
        default=None,
        ge=1,
        description="Optional bound on cached addresses; unbounded when unset.",
    )


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/api_saver.sqlite")
    sqlite_wal: bool = Field(default=True)
    settings_file: str = Field(default="./settings.json")


class AdminSettings(BaseModel):
    admin_key: str = Field(default="", description="Fallback admin key")
    log_viewer_token: str = Field(default="")


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)


ENV_KEYS = {
    "host": "API_SAVER_HOST",
    "port": "API_SAVER_PORT",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "service_name": "TELEMETRY_SERVICE_NAME",
    "log_dir": "TELEMETRY_LOG_DIR",
    "ip_mode": "TELEMETRY_IP_MODE",
    "ip_hash_salt": "IP_HASH_SALT",
    "sqlite_path": "SQLITE_PATH",
    "settings_file": "SETTINGS_FILE",
    "admin_key": "ADMIN_KEY",
    "log_viewer_token": "LOG_VIEWER_TOKEN",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate.resolve())
    return str((_project_root() / candidate).resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int | None) -> int | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    excluded_env = _split_csv(os.getenv("TELEMETRY_EXCLUDED_PATHS"))

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "telemetry": {
            "enabled": _env_bool("TELEMETRY_ENABLED", TelemetrySettings().enabled),
            "service_name": os.getenv(
                ENV_KEYS["service_name"], TelemetrySettings().service_name
            ),
            "log_dir": _resolve_path(
                os.getenv(ENV_KEYS["log_dir"], TelemetrySettings().log_dir)
            ),
            "log_file_prefix": os.getenv(
                "TELEMETRY_LOG_FILE_PREFIX", TelemetrySettings().log_file_prefix
            ),
            "ip_mode": os.getenv(ENV_KEYS["ip_mode"], TelemetrySettings().ip_mode),
            "ip_hash_salt": os.getenv(
                ENV_KEYS["ip_hash_salt"], TelemetrySettings().ip_hash_salt
            ),
            "max_body_bytes": _env_int(
                "TELEMETRY_MAX_BODY_BYTES", TelemetrySettings().max_body_bytes
            ),
            "excluded_paths": tuple(excluded_env) or DEFAULT_EXCLUDED_PATHS,
        },
        "enrichment": {
            "enabled": _env_bool("ENRICHMENT_ENABLED", EnrichmentSettings().enabled),
            "provider_url": os.getenv(
                "ENRICHMENT_PROVIDER_URL", EnrichmentSettings().provider_url
            ),
            "ttl_seconds": _env_float(
                "ENRICHMENT_TTL_SECONDS", EnrichmentSettings().ttl_seconds
            ),
            "timeout_seconds": _env_float(
                "ENRICHMENT_TIMEOUT_SECONDS", EnrichmentSettings().timeout_seconds
            ),
            "max_entries": _env_int(
                "ENRICHMENT_MAX_ENTRIES", EnrichmentSettings().max_entries
            ),
        },
        "storage": {
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
            "settings_file": _resolve_path(
                os.getenv(ENV_KEYS["settings_file"], StorageSettings().settings_file)
            ),
        },
        "admin": {
            "admin_key": os.getenv(ENV_KEYS["admin_key"], AdminSettings().admin_key),
            "log_viewer_token": os.getenv(
                ENV_KEYS["log_viewer_token"], AdminSettings().log_viewer_token
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.telemetry.log_dir).mkdir(parents=True, exist_ok=True)

    return settings
