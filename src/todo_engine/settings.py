from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Engine settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'sqlite' (default) or 'memory'
    - SQLITE_DB_PATH: path to the key-value sqlite file. Default './data/todos.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - ENABLE_BASIC_AUTH: 'true' to guard the local API with HTTP Basic Auth (default: false)
    - BASIC_AUTH_USERNAME: username for basic auth (required when ENABLE_BASIC_AUTH=true)
    - BASIC_AUTH_PASSWORD: password for basic auth (required when ENABLE_BASIC_AUTH=true)
    - LOG_LEVEL: logging level name (default: INFO)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_basic_auth: bool
    basic_auth_username: Optional[str]
    basic_auth_password: Optional[str]
    log_level: int


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _get_env(name: str, default: str) -> str:
    # unset and empty both mean "use the default"
    return os.getenv(name) or default


def _parse_bool(value: str, default: bool = False) -> bool:
    flag = value.strip().lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    return default


def _parse_origins(raw: str) -> List[str]:
    """
    CORS origins: '*' for any origin, otherwise a comma-separated list.
    """
    if raw.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _parse_backend(value: str) -> str:
    backend = value.strip().lower()
    # unsupported values run without durable storage
    return backend if backend in {"memory", "sqlite"} else "memory"


def _parse_log_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    # getLevelName returns a "Level X" string for unknown names
    return level if isinstance(level, int) else logging.INFO


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return engine settings loaded from environment variables."""
    auth_on = _parse_bool(_get_env("ENABLE_BASIC_AUTH", "false"))
    # credentials are only picked up when the guard is switched on
    return Settings(
        persistence_backend=_parse_backend(_get_env("PERSISTENCE_BACKEND", "sqlite")),
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todos.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        enable_basic_auth=auth_on,
        basic_auth_username=os.getenv("BASIC_AUTH_USERNAME") if auth_on else None,
        basic_auth_password=os.getenv("BASIC_AUTH_PASSWORD") if auth_on else None,
        log_level=_parse_log_level(_get_env("LOG_LEVEL", "INFO")),
    )
