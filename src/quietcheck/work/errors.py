# src/quietcheck/work/errors.py

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for errors surfaced by the work scheduler."""


class InvalidScheduleError(SchedulerError, ValueError):
    """Name, interval or flex window rejected before touching the registry."""


class RegistryUnavailableError(SchedulerError):
    """The durable registry could not be read or written; nothing was changed."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        msg = f"work registry unavailable during {operation}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
