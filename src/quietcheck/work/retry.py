# src/quietcheck/work/retry.py

from __future__ import annotations

"""
Retry controller.

Decides, after each run, between:
- retry: short-term re-attempt within the current period's failure budget,
- reschedule: advance to the next nominal period (after success, or once the
  budget is exhausted).

The two never mix: a retry keeps the period open, a reschedule closes it.
"""

import logging
from datetime import timedelta

from .models import BackoffPolicy, Outcome, RegistryEntry, RetryState, Transition

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_DELAY = timedelta(seconds=30)
MIN_BACKOFF_DELAY = timedelta(seconds=10)
MAX_BACKOFF_DELAY = timedelta(hours=5)


class RetryController:
    def __init__(
        self,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_policy: BackoffPolicy = BackoffPolicy.EXPONENTIAL,
        backoff_delay: timedelta = DEFAULT_BACKOFF_DELAY,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = int(max_attempts)
        self.backoff_policy = backoff_policy
        self.backoff_delay = backoff_delay

    def backoff_seconds(self, failed_attempts: int) -> float:
        """Delay before retry number `failed_attempts` (1-based), clamped to [10s, 5h]."""
        n = max(1, int(failed_attempts))
        base = self.backoff_delay.total_seconds()
        if self.backoff_policy == BackoffPolicy.LINEAR:
            delay = base * n
        else:
            delay = base * (2 ** (n - 1))
        return min(
            MAX_BACKOFF_DELAY.total_seconds(),
            max(MIN_BACKOFF_DELAY.total_seconds(), delay),
        )

    def on_success(self, entry: RegistryEntry, *, finished_at: float) -> Transition:
        return Transition(
            outcome=Outcome.SUCCESS,
            retry_state=RetryState.FRESH,
            attempt_count=0,
            next_fire_at=finished_at + entry.interval_seconds,
        )

    def on_failure(self, entry: RegistryEntry, *, finished_at: float) -> Transition:
        failed = min(entry.attempt_count, self.max_attempts) + 1

        if failed < self.max_attempts:
            delay = self.backoff_seconds(failed)
            logger.info(
                "%s failed (attempt %d/%d); retrying in %.0fs",
                entry.name,
                failed,
                self.max_attempts,
                delay,
            )
            return Transition(
                outcome=Outcome.RETRY,
                retry_state=RetryState.RETRYING,
                attempt_count=failed,
                next_fire_at=finished_at + delay,
            )

        logger.warning(
            "%s failed %d times; giving up until the next period",
            entry.name,
            self.max_attempts,
        )
        return Transition(
            outcome=Outcome.FAILURE,
            retry_state=RetryState.EXHAUSTED,
            attempt_count=self.max_attempts,
            next_fire_at=finished_at + entry.interval_seconds,
        )
