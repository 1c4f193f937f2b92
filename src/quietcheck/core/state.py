# src/quietcheck/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..work.executor import Executor
from ..work.models import TaskDefinition
from ..work.registry import WorkRegistry
from ..work.runner import WorkRunner
from ..work.scheduler import Scheduler


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    registry: WorkRegistry
    scheduler: Scheduler
    executor: Executor
    runner: WorkRunner

    # Desired periodic work, re-asserted on boot and on worker start.
    definitions: list[TaskDefinition] = field(default_factory=list)
