# src/quietcheck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local data directory exists,
- wires registry, scheduler, retry controller, executor and runner into AppState,
- describes the desired periodic work (the data collection task).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from ..collection import collect_data
from ..config import get_settings
from ..core.state import AppState
from ..work.executor import Executor
from ..work.models import RegistrationPolicy, TaskDefinition
from ..work.ports import Clock, TaskBody
from ..work.registry import WorkRegistry
from ..work.retry import RetryController
from ..work.runner import WorkRunner
from ..work.scheduler import Scheduler

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.registry_db_path.parent.mkdir(parents=True, exist_ok=True)


def desired_definitions(settings) -> list[TaskDefinition]:
    return [
        TaskDefinition(
            name=settings.task_name,
            interval=settings.task_interval,
            flex_window=settings.task_flex,
            policy=RegistrationPolicy.KEEP_EXISTING,
        )
    ]


def create_initial_state(
    *,
    settings=None,
    bodies: Mapping[str, TaskBody] | None = None,
    clock: Clock = time.time,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings, bodies and clock injectable makes the app easy to test.
    If settings is None, falls back to get_settings(). If bodies is None, the
    configured task name runs the default data collection body.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if bodies is None:
        bodies = {settings.task_name: collect_data}

    registry = WorkRegistry(settings.registry_db_path)
    retry = RetryController(
        max_attempts=settings.max_attempts,
        backoff_policy=settings.backoff_policy,
        backoff_delay=settings.backoff_delay,
    )
    executor = Executor(
        registry,
        bodies,
        retry=retry,
        clock=clock,
        timeout_seconds=settings.execution_timeout_seconds,
    )
    runner = WorkRunner(
        registry,
        executor,
        clock=clock,
        poll_interval_seconds=settings.poll_interval_seconds,
        claim_lease_seconds=settings.claim_lease_seconds,
    )

    return AppState(
        settings=settings,
        registry=registry,
        scheduler=Scheduler(registry, clock=clock),
        executor=executor,
        runner=runner,
        definitions=desired_definitions(settings),
    )
