# src/quietcheck/work/boot.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from .models import RegistrationPolicy, RegistryEntry, TaskDefinition
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

BOOT_COMPLETED = "boot_completed"


def reconcile(scheduler: Scheduler, definitions: Iterable[TaskDefinition]) -> list[RegistryEntry]:
    """
    Re-assert the desired schedules after anything that may have reset them.

    Always KEEP_EXISTING, whatever the definition says: an entry that
    survived keeps its next fire time and retry counters, a lost one is
    recreated. Used for both reboot and process-crash recovery.
    """
    entries: list[RegistryEntry] = []
    for d in definitions:
        entries.append(
            scheduler.enqueue_periodic(
                d.name,
                d.interval,
                d.flex_window,
                RegistrationPolicy.KEEP_EXISTING,
            )
        )
    return entries


class BootListener:
    """Receives the "system restart completed" signal; only re-registers, never runs work."""

    def __init__(self, scheduler: Scheduler, definitions: Iterable[TaskDefinition]) -> None:
        self._scheduler = scheduler
        self._definitions = list(definitions)

    def on_receive(self, event: str) -> bool:
        """Handle a trigger event. Returns True if it was the boot signal."""
        if event != BOOT_COMPLETED:
            logger.debug("Ignoring trigger event %r", event)
            return False
        self.on_boot_completed()
        return True

    def on_boot_completed(self) -> None:
        entries = reconcile(self._scheduler, self._definitions)
        logger.info("Boot completed: %d periodic task(s) ensured", len(entries))
