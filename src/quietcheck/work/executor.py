# src/quietcheck/work/executor.py

"""
Executor for claimed periodic work.

Runs one invocation of a task body to completion, turns whatever happened
into an outcome, lets the retry controller pick the next state, and persists
the result. A misbehaving body (exception, timeout, missing registration)
is a task failure; it never escapes into the runner.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Mapping

from .errors import RegistryUnavailableError
from .models import Outcome, RegistryEntry, RunContext, TaskRun
from .ports import Clock, TaskBody, WorkRepo
from .retry import RetryController

logger = logging.getLogger(__name__)

DEFAULT_EXECUTION_TIMEOUT_SECONDS = 600.0


class Executor:
    def __init__(
        self,
        registry: WorkRepo,
        bodies: Mapping[str, TaskBody],
        *,
        retry: RetryController | None = None,
        clock: Clock = time.time,
        timeout_seconds: float | None = DEFAULT_EXECUTION_TIMEOUT_SECONDS,
    ) -> None:
        self._registry = registry
        self._bodies = dict(bodies)
        self._retry = retry or RetryController()
        self._clock = clock
        self._timeout = timeout_seconds
        # Thread bodies that outlived their timeout, by task name.
        self._abandoned: dict[str, asyncio.Future] = {}

    def is_busy(self, name: str) -> bool:
        """True while an abandoned thread body for this name is still running."""
        worker = self._abandoned.get(name)
        return worker is not None and not worker.done()

    async def run(self, entry: RegistryEntry) -> Outcome:
        """
        Execute one claimed invocation and persist its outcome.

        Raises RegistryUnavailableError only if the outcome could not be
        stored; the claim then expires through its lease.
        """
        run = TaskRun(
            name=entry.name,
            generation=entry.generation,
            attempt=entry.attempt_count,
            claimed_at=entry.running_since,
            started_at=self._clock(),
        )
        logger.debug("Running %s attempt=%d generation=%d", entry.name, run.attempt, run.generation)

        error = await self._execute(entry)

        run.finished_at = self._clock()
        if error is None:
            transition = self._retry.on_success(entry, finished_at=run.finished_at)
        else:
            run.error = error
            transition = self._retry.on_failure(entry, finished_at=run.finished_at)
        run.outcome = transition.outcome

        try:
            self._registry.complete_run(run, transition)
        except RegistryUnavailableError:
            logger.exception("Could not persist outcome %s for %s", run.outcome.value, entry.name)
            raise

        if transition.outcome == Outcome.SUCCESS:
            logger.info("%s succeeded; next run at %.0f", entry.name, transition.next_fire_at)
        return transition.outcome

    async def _execute(self, entry: RegistryEntry) -> str | None:
        """Run the body; return None on success or a short failure description."""
        body = self._bodies.get(entry.name)
        if body is None:
            logger.error("No task body registered for %s", entry.name)
            return "no task body registered"

        ctx = RunContext(
            name=entry.name,
            attempt=entry.attempt_count,
            generation=entry.generation,
            scheduled_at=entry.next_fire_at,
            period_started_at=entry.period_started_at,
        )

        try:
            result = await self._call(entry.name, body, ctx)
        except TimeoutError:
            logger.error("%s timed out after %gs", entry.name, self._timeout)
            return f"timed out after {self._timeout:g}s"
        except Exception as exc:
            logger.exception("Task body %s raised", entry.name)
            return f"{type(exc).__name__}: {exc}"

        if result is False:
            logger.warning("Task body %s reported failure", entry.name)
            return "task body reported failure"
        return None

    async def _bounded(self, aw: Awaitable[object]) -> object:
        if self._timeout is not None and self._timeout > 0:
            return await asyncio.wait_for(aw, timeout=self._timeout)
        return await aw

    async def _call(self, name: str, body: TaskBody, ctx: RunContext) -> object:
        if inspect.iscoroutinefunction(body):
            return await self._bounded(body(ctx))

        # Plain callables may block; keep them off the event loop.
        worker = asyncio.ensure_future(asyncio.to_thread(body, ctx))
        try:
            result = await self._bounded(asyncio.shield(worker))
        except (TimeoutError, asyncio.CancelledError):
            # A thread cannot be stopped: fence the name until it returns.
            if not worker.done():
                self._abandoned[name] = worker
                worker.add_done_callback(functools.partial(self._release, name))
            raise
        if inspect.isawaitable(result):
            result = await self._bounded(result)
        return result

    def _release(self, name: str, worker: asyncio.Future) -> None:
        if self._abandoned.get(name) is worker:
            del self._abandoned[name]
        if worker.cancelled():
            return
        exc = worker.exception()
        if exc is not None:
            logger.warning("Abandoned body %s finished with %s: %s", name, type(exc).__name__, exc)
        else:
            logger.info("Abandoned body %s finished", name)
