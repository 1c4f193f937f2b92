# src/quietcheck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing required at import time; every value has a default.
- Durations accept "45s", "30m", "6h", "2d" or plain seconds.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from .collection import DATA_COLLECTION
from .work.models import BackoffPolicy

ENV_PREFIX = "QUIETCHECK"

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
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


def parse_duration(raw: str) -> timedelta | None:
    """Parse "30m", "6h", "2d", "45s" or "900" into a timedelta."""
    match = _DURATION_RE.match(raw.strip().lower())
    if not match:
        return None
    return timedelta(seconds=float(match.group(1)) * _DURATION_UNITS[match.group(2)])


def _env_duration(name: str, default: timedelta) -> timedelta:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    parsed = parse_duration(raw)
    return default if parsed is None else parsed


def _env_backoff(name: str, default: BackoffPolicy) -> BackoffPolicy:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return BackoffPolicy(raw.strip().lower())
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths ----
    data_dir: Path
    registry_db_path: Path

    # ---- Periodic task ----
    task_name: str
    task_interval: timedelta
    task_flex: timedelta

    # ---- Retry ----
    max_attempts: int
    backoff_policy: BackoffPolicy
    backoff_delay: timedelta

    # ---- Runner ----
    poll_interval_seconds: float
    claim_lease_seconds: float
    execution_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "quietcheck") or "quietcheck"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/quietcheck"))
        registry_db_path = _env_path(_k("REGISTRY_DB_PATH"), data_dir / "work.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            registry_db_path=registry_db_path,
            task_name=_env(_k("TASK_NAME"), DATA_COLLECTION).strip() or DATA_COLLECTION,
            task_interval=_env_duration(_k("TASK_INTERVAL"), timedelta(hours=6)),
            task_flex=_env_duration(_k("TASK_FLEX"), timedelta(minutes=15)),
            max_attempts=max(1, _env_int(_k("MAX_ATTEMPTS"), 3)),
            backoff_policy=_env_backoff(_k("BACKOFF_POLICY"), BackoffPolicy.EXPONENTIAL),
            backoff_delay=_env_duration(_k("BACKOFF_DELAY"), timedelta(seconds=30)),
            poll_interval_seconds=_env_float(_k("POLL_INTERVAL_SECONDS"), 60.0),
            claim_lease_seconds=_env_float(_k("CLAIM_LEASE_SECONDS"), 900.0),
            execution_timeout_seconds=_env_float(_k("EXECUTION_TIMEOUT_SECONDS"), 600.0),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
