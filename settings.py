from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_SUPABASE_URL_ENV = "SUPABASE_URL"
_SUPABASE_KEY_ENV = "SUPABASE_SERVICE_ROLE_KEY"
_TABLE_NAME_ENV = "SENSOR_READINGS_TABLE"
_BACKEND_ENV = "INGEST_BACKEND"
_FORWARD_TOKEN_ENV = "FORWARD_CALLER_TOKEN"
_TIMEOUT_ENV = "PROVIDER_TIMEOUT_SECONDS"
_LOCAL_TOKENS_ENV = "LOCAL_AUTH_TOKENS"
_LOCAL_ASSETS_ENV = "LOCAL_KNOWN_ASSETS"
_LOCAL_PATH_ENV = "LOCAL_PERSISTENCE_PATH"
_CORS_ORIGINS_ENV = "CORS_ALLOW_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

BACKEND_SUPABASE = "supabase"
BACKEND_LOCAL = "local"


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    table_name: str
    backend: str
    forward_caller_token: bool
    provider_timeout: float
    local_auth_tokens: str
    local_known_assets: Tuple[str, ...]
    local_persistence_path: Optional[str]
    cors_origins: Tuple[str, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "on"}:
        return True
    if candidate in {"0", "false", "no", "off"}:
        return False
    return default


def _read_timeout(default: float) -> float:
    value = os.getenv(_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_backend(url: Optional[str], key: Optional[str]) -> str:
    default = BACKEND_SUPABASE if url and key else BACKEND_LOCAL
    return _read_str_env(_BACKEND_ENV, default).lower()


@lru_cache
def get_settings() -> Settings:
    url = _read_optional_env(_SUPABASE_URL_ENV, None)
    key = _read_optional_env(_SUPABASE_KEY_ENV, None)
    return Settings(
        supabase_url=url.rstrip("/") if url else None,
        supabase_key=key,
        table_name=_read_str_env(_TABLE_NAME_ENV, "sensor_readings"),
        backend=_read_backend(url, key),
        forward_caller_token=_read_bool_env(_FORWARD_TOKEN_ENV, True),
        provider_timeout=_read_timeout(10.0),
        local_auth_tokens=_read_str_env(_LOCAL_TOKENS_ENV, ""),
        local_known_assets=_read_list_env(_LOCAL_ASSETS_ENV, ()),
        local_persistence_path=_read_optional_env(
            _LOCAL_PATH_ENV, "./tmp/sensor_readings.json"
        ),
        cors_origins=_read_list_env(_CORS_ORIGINS_ENV, ("*",)),
        log_level=_read_log_level("INFO"),
    )
