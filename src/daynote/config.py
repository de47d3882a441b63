# src/daynote/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Code that needs settings takes them injected; get_settings() is the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "DAYNOTE"

BACKENDS = ("sqlite", "memory", "remote")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Session ----
    owner_id: str
    username: str
    timezone: str

    # ---- Storage backend ----
    backend: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    notes_db_path: Path
    tasks_db_path: Path
    export_dir: Path

    # ---- Remote API ----
    api_base_url: str
    api_token: str | None
    api_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "daynote")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        owner_id = _env(_k("OWNER_ID"), "local").strip() or "local"
        username = _env(_k("USERNAME"), owner_id).strip() or owner_id
        timezone = _env(_k("TIMEZONE"), "UTC").strip() or "UTC"

        backend = _env(_k("BACKEND"), "sqlite").strip().lower()
        if backend not in BACKENDS:
            backend = "sqlite"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/daynote"))
        notes_db_path = _env_path(_k("NOTES_DB_PATH"), data_dir / "notes.sqlite3")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "plans.sqlite3")
        export_dir = _env_path(_k("EXPORT_DIR"), data_dir / "exports")

        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:3000/api").rstrip("/")
        # Accept the bare name too, so one .env can serve the web server and this client.
        api_token = _first_env(_k("API_TOKEN"), "API_TOKEN", default=None)
        api_timeout_seconds = _env_float(_k("API_TIMEOUT_SECONDS"), 10.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            owner_id=owner_id,
            username=username,
            timezone=timezone,
            backend=backend,
            data_dir=data_dir,
            notes_db_path=notes_db_path,
            tasks_db_path=tasks_db_path,
            export_dir=export_dir,
            api_base_url=api_base_url,
            api_token=api_token,
            api_timeout_seconds=api_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
