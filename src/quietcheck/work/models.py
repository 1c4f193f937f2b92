# src/quietcheck/work/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum


class RegistrationPolicy(StrEnum):
    """What enqueue_periodic does when an entry with the same name already exists."""

    KEEP_EXISTING = "keep_existing"
    REPLACE = "replace"


class Outcome(StrEnum):
    SUCCESS = "success"
    RETRY = "retry"
    FAILURE = "failure"

    @classmethod
    def from_db(cls, raw: str | None) -> Outcome | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


class RetryState(StrEnum):
    """
    Per-period retry state.

    - fresh: no failure recorded in the current period
    - retrying: at least one failure, retry budget left
    - exhausted: budget spent; terminal until the next period starts
    """

    FRESH = "fresh"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"

    @classmethod
    def from_db(cls, raw: str | None) -> RetryState:
        if not raw:
            return cls.FRESH
        try:
            return cls(raw)
        except ValueError:
            return cls.FRESH


class BackoffPolicy(StrEnum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


@dataclass(slots=True, frozen=True)
class TaskDefinition:
    name: str
    interval: timedelta
    flex_window: timedelta = timedelta(0)
    policy: RegistrationPolicy = RegistrationPolicy.KEEP_EXISTING


@dataclass(slots=True)
class RegistryEntry:
    name: str
    interval_seconds: float
    flex_seconds: float

    retry_state: RetryState
    attempt_count: int
    generation: int

    next_fire_at: float
    period_started_at: float | None
    running_since: float | None

    last_outcome: Outcome | None
    last_run_at: float | None
    last_success_at: float | None

    cancelled: bool
    created_at: float
    updated_at: float

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    @property
    def flex_window(self) -> timedelta:
        return timedelta(seconds=self.flex_seconds)

    def wakeup_deadline(self) -> float:
        """Latest time the runner should wake for this entry (retries ignore flex)."""
        if self.retry_state == RetryState.RETRYING:
            return self.next_fire_at
        return self.next_fire_at + self.flex_seconds


@dataclass(slots=True)
class TaskRun:
    """
    One execution attempt.

    claimed_at is the registry claim this run holds; completion is only
    applied while the entry still carries the same claim and generation.
    """

    name: str
    generation: int
    attempt: int
    claimed_at: float | None
    started_at: float
    finished_at: float | None = None
    outcome: Outcome | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class Transition:
    """Registry update the retry controller decided on after a run."""

    outcome: Outcome
    retry_state: RetryState
    attempt_count: int
    next_fire_at: float


@dataclass(slots=True, frozen=True)
class RunContext:
    """What a task body gets to know about the invocation it is serving."""

    name: str
    attempt: int
    generation: int
    scheduled_at: float
    period_started_at: float | None
