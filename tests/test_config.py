# tests/test_config.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from quietcheck.config import Settings, parse_duration
from quietcheck.work.models import BackoffPolicy


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("45s", timedelta(seconds=45)),
        ("15m", timedelta(minutes=15)),
        ("6h", timedelta(hours=6)),
        ("2d", timedelta(days=2)),
        ("900", timedelta(seconds=900)),
        (" 6H ", timedelta(hours=6)),
    ],
)
def test_parse_duration(raw, expected) -> None:
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "six hours", "-5m", "5w"])
def test_parse_duration_rejects_garbage(raw) -> None:
    assert parse_duration(raw) is None


def test_settings_defaults(monkeypatch) -> None:
    for key in (
        "QUIETCHECK_DATA_DIR",
        "QUIETCHECK_REGISTRY_DB_PATH",
        "QUIETCHECK_TASK_NAME",
        "QUIETCHECK_TASK_INTERVAL",
        "QUIETCHECK_TASK_FLEX",
        "QUIETCHECK_MAX_ATTEMPTS",
        "QUIETCHECK_BACKOFF_POLICY",
    ):
        monkeypatch.delenv(key, raising=False)

    s = Settings.from_env()
    assert s.task_name == "data_collection"
    assert s.task_interval == timedelta(hours=6)
    assert s.task_flex == timedelta(minutes=15)
    assert s.max_attempts == 3
    assert s.backoff_policy == BackoffPolicy.EXPONENTIAL
    assert s.registry_db_path == Path(".local/quietcheck") / "work.sqlite3"


def test_settings_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("QUIETCHECK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("QUIETCHECK_TASK_INTERVAL", "12h")
    monkeypatch.setenv("QUIETCHECK_TASK_FLEX", "not-a-duration")
    monkeypatch.setenv("QUIETCHECK_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("QUIETCHECK_BACKOFF_POLICY", "linear")
    monkeypatch.delenv("QUIETCHECK_REGISTRY_DB_PATH", raising=False)

    s = Settings.from_env()
    assert s.task_interval == timedelta(hours=12)
    assert s.task_flex == timedelta(minutes=15)
    assert s.max_attempts == 5
    assert s.backoff_policy == BackoffPolicy.LINEAR
    assert s.registry_db_path == tmp_path / "work.sqlite3"


def test_zero_durations_are_kept(monkeypatch) -> None:
    monkeypatch.setenv("QUIETCHECK_TASK_FLEX", "0")
    monkeypatch.setenv("QUIETCHECK_BACKOFF_DELAY", "0s")

    s = Settings.from_env()
    assert s.task_flex == timedelta(0)
    assert s.backoff_delay == timedelta(0)
