"""
Backoff scheduling.

Exponential backoff with bounded jitter that never schedules a wait
past the overall deadline.
"""

import random
from typing import Optional

from slot_booker.core.models import RetryPolicy


class BackoffScheduler:
    """
    Computes the delay before the next attempt.

    The delay grows as backoff_base * 2**(attempt - 1), is capped at
    backoff_max and jittered by +/- policy.jitter. A delay is only
    handed out when the remaining budget still leaves room for a
    minimal attempt after it.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._policy = policy
        self._rng = rng or random.Random()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def base_delay(self, attempt_index: int) -> float:
        """Un-jittered delay after the given attempt (1-based)."""
        exponent = max(attempt_index, 1) - 1
        # Avoid float overflow on absurd attempt counts
        if exponent > 62:
            return self._policy.backoff_max
        return min(self._policy.backoff_max, self._policy.backoff_base * (2 ** exponent))

    def next_delay(self, attempt_index: int, remaining_budget: float) -> Optional[float]:
        """
        Get the delay to wait after a failed attempt.

        Args:
            attempt_index: Index of the attempt that just failed (1-based).
            remaining_budget: Seconds left before the overall deadline.

        Returns:
            Delay in seconds, strictly less than remaining_budget, or
            None when waiting would leave no room for another attempt.
        """
        if remaining_budget <= 0:
            return None

        delay = self.base_delay(attempt_index)
        jitter = self._policy.jitter
        if jitter and delay > 0:
            delay *= self._rng.uniform(1.0 - jitter, 1.0 + jitter)
        delay = min(delay, self._policy.backoff_max)

        if delay + self._policy.min_attempt_timeout >= remaining_budget:
            return None
        return delay
