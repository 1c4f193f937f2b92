# tests/conftest.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from quietcheck.work.models import BackoffPolicy
from quietcheck.work.registry import WorkRegistry
from quietcheck.work.scheduler import Scheduler

from .fakes import FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_initial_state().

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        registry_db_path=tmp_path / "work.sqlite3",
        task_name="data_collection",
        task_interval=timedelta(hours=6),
        task_flex=timedelta(minutes=15),
        max_attempts=3,
        backoff_policy=BackoffPolicy.EXPONENTIAL,
        backoff_delay=timedelta(seconds=30),
        poll_interval_seconds=60.0,
        claim_lease_seconds=900.0,
        execution_timeout_seconds=5.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(tmp_path: Path) -> WorkRegistry:
    """Real SQLite registry: its atomicity is part of what we test."""
    return WorkRegistry(tmp_path / "work.sqlite3")


@pytest.fixture()
def scheduler(registry: WorkRegistry, clock: FakeClock) -> Scheduler:
    return Scheduler(registry, clock=clock)
