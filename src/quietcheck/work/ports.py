# src/quietcheck/work/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the scheduler components.

Scheduler, executor and runner depend on Protocols instead of the SQLite
registry directly, so tests can swap in fakes (e.g. a registry that is down).
"""

from typing import Awaitable, Callable, Protocol

from .models import RegistryEntry, RunContext, TaskDefinition, TaskRun, Transition

Clock = Callable[[], float]
# Epoch seconds, time.time() in production.

TaskBody = Callable[[RunContext], "bool | None | Awaitable[bool | None]"]
# Opaque unit of work. True/None means success, False means failure;
# raising is treated as failure.


class WorkRepo(Protocol):
    # Scheduler API
    def register(self, definition: TaskDefinition, *, now: float) -> tuple[RegistryEntry, bool]: ...
    def cancel(self, name: str, *, now: float) -> bool: ...
    def get_entry(self, name: str) -> RegistryEntry | None: ...
    def list_entries(self, *, include_cancelled: bool = True) -> list[RegistryEntry]: ...

    # Runner / executor API
    def list_due(self, *, now: float, lease_seconds: float, limit: int = 32) -> list[RegistryEntry]: ...
    def next_wakeup_at(self) -> float | None: ...
    def try_claim(self, name: str, *, now: float, lease_seconds: float) -> RegistryEntry | None: ...
    def complete_run(self, run: TaskRun, transition: Transition) -> bool: ...
    def list_runs(self, name: str, *, limit: int = 20) -> list[TaskRun]: ...
