# src/quietcheck/work/runner.py

from __future__ import annotations

"""
Work runner.

The scheduling substrate: a small polling loop that
- fetches due entries,
- claims them (single-flight per name, in-process and in the registry),
- hands each claim to the executor,
- sleeps until the next deadline (fire time + flex) or the poll interval.

To stop the runner, set the stop event or cancel the coroutine/task.
"""

import asyncio
import logging
import time

from .executor import Executor
from .models import Outcome
from .ports import Clock, WorkRepo

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_LEASE_SECONDS = 900.0


class WorkRunner:
    def __init__(
        self,
        registry: WorkRepo,
        executor: Executor,
        *,
        clock: Clock = time.time,
        poll_interval_seconds: float = 60.0,
        claim_lease_seconds: float = DEFAULT_CLAIM_LEASE_SECONDS,
        batch_limit: int = 32,
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._clock = clock
        self._poll_s = max(0.5, float(poll_interval_seconds))
        self._lease_s = max(1.0, float(claim_lease_seconds))
        self._batch_limit = int(batch_limit)
        self._active: set[str] = set()

    def is_running(self, name: str) -> bool:
        return name in self._active or self._executor.is_busy(name)

    async def dispatch(self, name: str) -> Outcome | None:
        """
        Deliver one invocation of `name` to the executor.

        Returns None when the delivery is rejected: another invocation of the
        same name is still outstanding, or the entry is not claimable.
        """
        if self.is_running(name):
            logger.debug("Skipping %s: invocation already in flight", name)
            return None

        self._active.add(name)
        try:
            entry = self._registry.try_claim(name, now=self._clock(), lease_seconds=self._lease_s)
            if entry is None:
                return None
            return await self._executor.run(entry)
        finally:
            self._active.discard(name)

    async def run_once(self) -> dict[str, Outcome]:
        """One poll pass: run every due entry (different names concurrently)."""
        now_ts = self._clock()
        try:
            due = self._registry.list_due(
                now=now_ts, lease_seconds=self._lease_s, limit=self._batch_limit
            )
        except Exception:
            logger.exception("list_due failed")
            return {}

        names = [e.name for e in due if not self.is_running(e.name)]
        if not names:
            return {}

        results = await asyncio.gather(
            *(self.dispatch(name) for name in names), return_exceptions=True
        )

        outcomes: dict[str, Outcome] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("dispatch failed name=%s: %s", name, result)
                continue
            if result is not None:
                outcomes[name] = result
        return outcomes

    def seconds_until_wakeup(self) -> float:
        try:
            deadline = self._registry.next_wakeup_at()
        except Exception:
            logger.exception("next_wakeup_at failed")
            return self._poll_s
        if deadline is None:
            return self._poll_s
        return min(self._poll_s, max(0.0, deadline - self._clock()))

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        stop = stop or asyncio.Event()
        logger.info("Work runner started (poll=%.1fs lease=%.0fs)", self._poll_s, self._lease_s)

        while not stop.is_set():
            await self.run_once()

            # Never spin: at least a short pause even if something is already due.
            sleep_s = max(0.5, self.seconds_until_wakeup())
            try:
                await asyncio.wait_for(stop.wait(), timeout=sleep_s)
            except TimeoutError:
                continue

        logger.info("Work runner stopped")
