# tests/test_boot.py

from __future__ import annotations

from datetime import timedelta

import pytest

from quietcheck.cli.bootstrap import create_initial_state
from quietcheck.work.boot import BOOT_COMPLETED, BootListener, reconcile
from quietcheck.work.errors import RegistryUnavailableError
from quietcheck.work.models import Outcome, RegistrationPolicy, RetryState, TaskDefinition
from quietcheck.work.scheduler import Scheduler

from .fakes import ScriptedBody

NAME = "data_collection"


@pytest.mark.asyncio
async def test_boot_preserves_state_recorded_before_restart(settings, clock) -> None:
    body = ScriptedBody([False])
    state = create_initial_state(settings=settings, bodies={NAME: body}, clock=clock)
    BootListener(state.scheduler, state.definitions).on_receive(BOOT_COMPLETED)

    # Get into the middle of a retry cycle.
    clock.advance(timedelta(hours=6))
    assert await state.runner.dispatch(NAME) == Outcome.RETRY
    before = state.registry.get_entry(NAME)
    assert before.retry_state == RetryState.RETRYING

    # Restart: fresh objects over the same durable store.
    clock.advance(timedelta(seconds=5))
    restarted = create_initial_state(settings=settings, bodies={NAME: body}, clock=clock)
    BootListener(restarted.scheduler, restarted.definitions).on_receive(BOOT_COMPLETED)

    assert restarted.registry.get_entry(NAME) == before
    assert body.calls == 1


def test_boot_recreates_lost_registry(settings, clock) -> None:
    state = create_initial_state(settings=settings, bodies={}, clock=clock)
    assert state.registry.get_entry(NAME) is None

    listener = BootListener(state.scheduler, state.definitions)
    listener.on_boot_completed()

    entry = state.registry.get_entry(NAME)
    assert entry is not None
    assert entry.next_fire_at == clock.now + timedelta(hours=6).total_seconds()
    assert entry.flex_seconds == timedelta(minutes=15).total_seconds()


def test_other_events_are_ignored(settings, clock) -> None:
    state = create_initial_state(settings=settings, bodies={}, clock=clock)
    listener = BootListener(state.scheduler, state.definitions)

    assert listener.on_receive("package_replaced") is False
    assert state.registry.count_entries() == 0
    assert listener.on_receive(BOOT_COMPLETED) is True
    assert state.registry.count_entries() == 1


def test_reconcile_never_replaces(settings, clock) -> None:
    state = create_initial_state(settings=settings, bodies={}, clock=clock)
    state.scheduler.enqueue_periodic(NAME, timedelta(hours=6), timedelta(minutes=15))
    before = state.registry.get_entry(NAME)

    clock.advance(timedelta(hours=1))
    reconcile(
        state.scheduler,
        [TaskDefinition(NAME, timedelta(hours=1), timedelta(0), RegistrationPolicy.REPLACE)],
    )
    assert state.registry.get_entry(NAME) == before


def test_boot_surfaces_registry_failure(settings, clock) -> None:
    class DownRegistry:
        def register(self, definition, *, now):
            raise RegistryUnavailableError("register", "disk full")

    definitions = [TaskDefinition(NAME, timedelta(hours=6), timedelta(minutes=15))]
    listener = BootListener(Scheduler(DownRegistry(), clock=clock), definitions)

    with pytest.raises(RegistryUnavailableError):
        listener.on_receive(BOOT_COMPLETED)
