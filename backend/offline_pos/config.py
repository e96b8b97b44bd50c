# backend/offline_pos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # SQLite DB stored next to the process unless DATABASE_URL says otherwise
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///offline_pos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote document store; unset means local-only mode
    REMOTE_STORE_URL = os.environ.get("REMOTE_STORE_URL") or None
    REMOTE_STORE_TOKEN = os.environ.get("REMOTE_STORE_TOKEN") or None
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "10"))

    AUTO_SYNC = _env_bool("AUTO_SYNC", True)
    BACKGROUND_SYNC_INTERVAL_MINUTES = int(os.environ.get("BACKGROUND_SYNC_INTERVAL_MINUTES", "5"))
    CONNECTIVITY_PROBE_SECONDS = float(os.environ.get("CONNECTIVITY_PROBE_SECONDS", "15"))

    # e.g. 7.5 => 7.5%
    DEFAULT_TAX_RATE_PERCENT = float(os.environ.get("DEFAULT_TAX_RATE_PERCENT", "0.0"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
