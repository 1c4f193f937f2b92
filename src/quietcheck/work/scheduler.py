# src/quietcheck/work/scheduler.py

from __future__ import annotations

import logging
import time
from datetime import timedelta

from .errors import InvalidScheduleError
from .models import RegistrationPolicy, RegistryEntry, TaskDefinition
from .ports import Clock, WorkRepo

logger = logging.getLogger(__name__)

# Hard floor for periodic work: shorter periods defeat batching.
MIN_PERIODIC_INTERVAL = timedelta(minutes=15)


class Scheduler:
    """
    Registers named periodic work in the durable registry.

    The name is the identity key. With KEEP_EXISTING an existing entry is
    left exactly as it is (schedule, retry counters, next fire time), which is
    what makes re-registration on every boot safe. REPLACE discards the
    pending fire and any retry state and starts over from now + interval.
    """

    def __init__(
        self,
        registry: WorkRepo,
        *,
        clock: Clock = time.time,
        min_interval: timedelta = MIN_PERIODIC_INTERVAL,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._min_interval = min_interval

    def validate(self, definition: TaskDefinition) -> TaskDefinition:
        """Return a normalized definition or raise InvalidScheduleError."""
        name = (definition.name or "").strip()
        if not name:
            raise InvalidScheduleError("task name is required")
        if definition.interval < self._min_interval:
            raise InvalidScheduleError(
                f"interval {definition.interval} for {name!r} is below the minimum "
                f"{self._min_interval}"
            )
        if definition.flex_window < timedelta(0):
            raise InvalidScheduleError(f"flex window for {name!r} must not be negative")

        try:
            policy = RegistrationPolicy(definition.policy)
        except ValueError as exc:
            raise InvalidScheduleError(f"unknown registration policy {definition.policy!r}") from exc

        flex = definition.flex_window
        if flex > definition.interval:
            logger.warning(
                "Flex window %s for %s exceeds interval %s; clamping",
                flex,
                name,
                definition.interval,
            )
            flex = definition.interval

        return TaskDefinition(
            name=name,
            interval=definition.interval,
            flex_window=flex,
            policy=policy,
        )

    def enqueue(self, definition: TaskDefinition) -> RegistryEntry:
        definition = self.validate(definition)
        entry, changed = self._registry.register(definition, now=self._clock())
        if changed:
            logger.info(
                "Scheduled %s every %s (flex %s, policy=%s), next fire at %.0f",
                entry.name,
                definition.interval,
                definition.flex_window,
                definition.policy.value,
                entry.next_fire_at,
            )
        else:
            logger.debug("Kept existing schedule for %s", entry.name)
        return entry

    def enqueue_periodic(
        self,
        name: str,
        interval: timedelta,
        flex_window: timedelta = timedelta(0),
        policy: RegistrationPolicy = RegistrationPolicy.KEEP_EXISTING,
    ) -> RegistryEntry:
        return self.enqueue(
            TaskDefinition(name=name, interval=interval, flex_window=flex_window, policy=policy)
        )

    def cancel(self, name: str) -> bool:
        cancelled = self._registry.cancel(name, now=self._clock())
        if cancelled:
            logger.info("Cancelled periodic work %s", name)
        return cancelled

    def get(self, name: str) -> RegistryEntry | None:
        return self._registry.get_entry(name)

    def list_entries(self) -> list[RegistryEntry]:
        return self._registry.list_entries()
