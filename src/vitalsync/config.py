"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _resolve_db_dir() -> Path:
    """Return (and create) the directory that holds the SQLite file."""
    d = Path(os.getenv("VITALSYNC_DATA_DIR", str(_PROJECT_ROOT / "data")))
    d.mkdir(parents=True, exist_ok=True)
    return d


_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{_resolve_db_dir() / 'vitalsync.db'}"


class Settings(BaseSettings):
    """All runtime configuration for the telemetry ingestion service.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in a flat namespace
    (``MERGE_WINDOW_SECONDS``, ``DATABASE_URL``, ...).
    """

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────
    database_url: str = _DEFAULT_DB_URL

    # ── API server ────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = int(os.getenv("PORT", "8000"))
    cors_origins: str = "*"  # comma-separated origins, or "*" for all

    # Header set by the upstream identity provider for dashboard users.
    identity_header: str = "X-User-Id"

    # ── Correlation ───────────────────────────────────────────
    merge_window_seconds: float = 10.0
    serialize_per_user: bool = True
    validation_policy: Literal["drop_field", "reject"] = "drop_field"

    # ── Readback ──────────────────────────────────────────────
    readback_default_limit: int = 50
    readback_max_limit: int = 200

    # ── Device keys ───────────────────────────────────────────
    key_bytes: int = 32

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool | None = None  # None: console on a TTY, JSON otherwise


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
