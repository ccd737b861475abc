from __future__ import annotations

import os
from pathlib import Path
from typing import Final


ENV_FILE: Final[Path] = Path(".env")
DEFAULT_API_BASE: Final[str] = "http://127.0.0.1:8787/api"
DEFAULT_HTTP_TIMEOUT: Final[float] = 30.0
DEFAULT_LOG_LEVEL: Final[str] = "INFO"
_TRUTHY: Final[frozenset] = frozenset({"1", "true", "yes", "on"})


def _load_env_file() -> None:
    """Populate os.environ from .env if present without overriding existing values."""

    if not ENV_FILE.exists():
        return

    try:
        lines = ENV_FILE.read_text(encoding="utf-8").splitlines()
    except OSError:
        return

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if not key:
            continue
        value = value.split("#", 1)[0].strip()
        os.environ.setdefault(key, value)


_load_env_file()


def api_base_url() -> str:
    raw = os.getenv("SUBMANAGER_API_BASE", DEFAULT_API_BASE).strip()
    return (raw or DEFAULT_API_BASE).rstrip("/")


def http_timeout() -> float:
    raw = os.getenv("SUBMANAGER_HTTP_TIMEOUT")
    if raw is None:
        return DEFAULT_HTTP_TIMEOUT
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_HTTP_TIMEOUT
    return value if value > 0 else DEFAULT_HTTP_TIMEOUT


def tls_verify() -> bool:
    raw = os.getenv("SUBMANAGER_TLS_VERIFY")
    if raw is None:
        return True
    return raw.strip().lower() in _TRUTHY


def database_path() -> str:
    return os.environ.get("SUBMANAGER_DB", os.path.join(os.getcwd(), "submanager.db"))


def log_level() -> str:
    return os.getenv("SUBMANAGER_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL
