# tests/test_executor.py

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta

import pytest

from quietcheck.cli.bootstrap import create_initial_state
from quietcheck.work.models import Outcome, RegistrationPolicy, RetryState

from .fakes import ScriptedBody

NAME = "data_collection"
SIX_HOURS = timedelta(hours=6)
FLEX = timedelta(minutes=15)


def _state(settings, clock, body):
    state = create_initial_state(settings=settings, bodies={NAME: body}, clock=clock)
    state.scheduler.enqueue_periodic(NAME, SIX_HOURS, FLEX, RegistrationPolicy.KEEP_EXISTING)
    clock.advance(SIX_HOURS)
    return state


async def _fire_retry(state, clock):
    """Advance to the entry's next fire time and deliver it."""
    entry = state.registry.get_entry(NAME)
    clock.now = max(clock.now, entry.next_fire_at)
    return await state.runner.dispatch(NAME)


@pytest.mark.asyncio
async def test_bounded_retry_then_reset_next_period(settings, clock) -> None:
    body = ScriptedBody([False])
    state = _state(settings, clock, body)

    outcomes = [await _fire_retry(state, clock) for _ in range(3)]
    assert outcomes == [Outcome.RETRY, Outcome.RETRY, Outcome.FAILURE]

    entry = state.registry.get_entry(NAME)
    assert entry.retry_state == RetryState.EXHAUSTED
    assert entry.attempt_count == 3
    assert entry.last_outcome == Outcome.FAILURE

    # No further retry within this period.
    assert await state.runner.dispatch(NAME) is None

    assert await _fire_retry(state, clock) == Outcome.RETRY
    assert [c.attempt for c in body.contexts] == [0, 1, 2, 0]


@pytest.mark.asyncio
async def test_end_to_end_fail_twice_then_succeed(settings, clock) -> None:
    body = ScriptedBody([False, RuntimeError("sensor offline"), True])
    state = _state(settings, clock, body)

    outcomes = [await _fire_retry(state, clock) for _ in range(3)]
    assert outcomes == [Outcome.RETRY, Outcome.RETRY, Outcome.SUCCESS]

    entry = state.registry.get_entry(NAME)
    assert entry.attempt_count == 0
    assert entry.last_outcome == Outcome.SUCCESS
    assert entry.retry_state == RetryState.FRESH
    assert entry.running_since is None
    assert entry.next_fire_at == entry.last_success_at + SIX_HOURS.total_seconds()

    runs = state.registry.list_runs(NAME)
    assert [r.outcome for r in runs] == [Outcome.SUCCESS, Outcome.RETRY, Outcome.RETRY]
    assert "sensor offline" in (runs[1].error or "")


@pytest.mark.asyncio
async def test_exception_is_a_failure_not_a_crash(settings, clock) -> None:
    body = ScriptedBody([ValueError("boom")])
    state = _state(settings, clock, body)

    assert await state.runner.dispatch(NAME) == Outcome.RETRY
    assert state.registry.get_entry(NAME).attempt_count == 1


@pytest.mark.asyncio
async def test_timeout_is_a_failure(settings, clock) -> None:
    settings.execution_timeout_seconds = 0.05

    async def slow(ctx):
        await asyncio.sleep(5)
        return True

    state = _state(settings, clock, slow)

    assert await state.runner.dispatch(NAME) == Outcome.RETRY
    runs = state.registry.list_runs(NAME)
    assert runs[0].error == "timed out after 0.05s"


@pytest.mark.asyncio
async def test_timed_out_thread_body_blocks_its_retry(settings, clock) -> None:
    settings.execution_timeout_seconds = 0.1
    release = threading.Event()
    lock = threading.Lock()
    running = 0
    peak = 0
    calls = 0

    def stuck_once(ctx):
        nonlocal running, peak, calls
        with lock:
            calls += 1
            first = calls == 1
            running += 1
            peak = max(peak, running)
        try:
            if first:
                release.wait(5)
            return True
        finally:
            with lock:
                running -= 1

    state = _state(settings, clock, stuck_once)

    assert await state.runner.dispatch(NAME) == Outcome.RETRY
    assert state.executor.is_busy(NAME)
    assert state.runner.is_running(NAME)

    # The retry is due, but the first thread has not returned yet.
    assert await _fire_retry(state, clock) is None
    assert await state.runner.run_once() == {}
    assert calls == 1

    release.set()
    for _ in range(200):
        if not state.executor.is_busy(NAME):
            break
        await asyncio.sleep(0.01)
    assert not state.executor.is_busy(NAME)

    assert await _fire_retry(state, clock) == Outcome.SUCCESS
    assert calls == 2
    assert peak == 1


@pytest.mark.asyncio
async def test_missing_body_is_a_failure(settings, clock) -> None:
    state = create_initial_state(settings=settings, bodies={}, clock=clock)
    state.scheduler.enqueue_periodic(NAME, SIX_HOURS, FLEX)
    clock.advance(SIX_HOURS)

    assert await state.runner.dispatch(NAME) == Outcome.RETRY


@pytest.mark.asyncio
async def test_outcome_discarded_after_replace_during_run(settings, clock) -> None:
    state = None

    async def replacing_body(ctx):
        state.scheduler.enqueue_periodic(
            NAME, timedelta(hours=12), timedelta(0), RegistrationPolicy.REPLACE
        )
        return False

    state = _state(settings, clock, replacing_body)
    await state.runner.dispatch(NAME)

    entry = state.registry.get_entry(NAME)
    assert entry.generation == 1
    assert entry.attempt_count == 0
    assert entry.retry_state == RetryState.FRESH
    assert entry.last_outcome is None
    assert entry.running_since is None
    assert entry.next_fire_at == clock.now + timedelta(hours=12).total_seconds()
