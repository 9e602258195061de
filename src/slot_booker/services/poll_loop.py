"""
Poll Loop.

Keeps calling the remote step, one orchestrated iteration at a time,
until the booking is confirmed or the poll budget runs out.
"""

import time
from collections import Counter
from typing import Any, Callable, Optional

from slot_booker.core.classifier import classify
from slot_booker.core.models import (
    AttemptOutcome,
    Blocked,
    BookingRule,
    FatalFailure,
    OrchestrationResult,
    OutcomeStatus,
    RemoteState,
    RetryPolicy,
    Succeeded,
)
from slot_booker.infrastructure.logging import get_logger
from slot_booker.infrastructure.metrics import get_metrics
from slot_booker.services.orchestrator import Clock, RetryOrchestrator, Sleeper, UnitOfWork


logger = get_logger(__name__)

# Best-effort action run after a Blocked state, receives a timeout in seconds
RecoveryAction = Callable[[RemoteState, float], Any]
Classifier = Callable[[Any], RemoteState]


def max_iterations(rule: BookingRule) -> int:
    """Number of polls the rule's budget allows, at least one."""
    return max(1, (rule.poll_budget_seconds * 1000) // rule.poll_interval_ms)


class PollLoop:
    """
    Polls until a terminal state is observed.

    Each iteration runs the unit of work through the RetryOrchestrator,
    bounded by what is left of the poll budget, then classifies the
    payload. Succeeded stops the loop; NotYetAvailable, Blocked and
    Unknown keep it going; fatal failures end it immediately.
    Consecutive calls are never closer than the poll interval.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        orchestrator: Optional[RetryOrchestrator] = None,
        classifier: Classifier = classify,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._policy = policy
        self._orchestrator = orchestrator or RetryOrchestrator(clock=clock, sleep=sleep)
        self._classify = classifier
        self._clock = clock
        self._sleep = sleep

    def poll(
        self,
        unit_of_work: UnitOfWork,
        rule: BookingRule,
        recovery: Optional[RecoveryAction] = None,
    ) -> OrchestrationResult:
        """
        Poll the remote step until it reports success or time runs out.

        Args:
            unit_of_work: Callable taking the attempt timeout in seconds.
            rule: Booking rule providing poll budget and interval.
            recovery: Optional action run after a Blocked state.

        Returns:
            OrchestrationResult with status BOOKED, TIMEOUT, or the
            status of a fatal failure.
        """
        start = self._clock()
        deadline = start + min(float(rule.poll_budget_seconds), self._policy.overall_timeout)
        interval = rule.poll_interval_ms / 1000.0
        iteration_limit = max_iterations(rule)
        metrics = get_metrics()

        counts: Counter = Counter()
        attempts = 0
        iterations = 0
        last_state: Optional[RemoteState] = None
        last_payload: Any = None
        last_outcome: Optional[AttemptOutcome] = None

        def finish(status: OutcomeStatus) -> OrchestrationResult:
            return OrchestrationResult(
                status=status,
                attempts_used=attempts,
                elapsed=self._clock() - start,
                terminal_state=last_state,
                last_payload=last_payload,
                outcome=last_outcome,
                iterations=iterations,
                state_counts=dict(counts),
            )

        for iteration in range(1, iteration_limit + 1):
            iteration_start = self._clock()
            remaining = deadline - iteration_start
            if remaining <= 0:
                break

            iterations = iteration
            result = self._orchestrator.run(unit_of_work, self._policy.bounded_by(remaining))
            attempts += result.attempts_used
            last_outcome = result.outcome

            if isinstance(result.outcome, FatalFailure):
                if result.status == OutcomeStatus.OVERALL_TIMEOUT:
                    # The iteration was cut short by the poll deadline itself
                    logger.info(
                        f"Poll budget exhausted during iteration {iteration}",
                        extra={"extra_fields": {"iteration": iteration}}
                    )
                    return finish(OutcomeStatus.TIMEOUT)
                logger.warning(
                    f"Poll stopped by fatal failure: {result.outcome.reason}",
                    extra={"extra_fields": {
                        "iteration": iteration,
                        "status": result.status.value,
                        "code": result.outcome.code,
                    }}
                )
                return finish(result.status)

            if result.status == OutcomeStatus.RETRIES_EXHAUSTED:
                counts["failed"] += 1
                metrics.poll_iterations_total.inc(state="failed")
                logger.warning(
                    f"Poll iteration {iteration} exhausted its retries, continuing",
                    extra={"extra_fields": {"iteration": iteration}}
                )
            else:
                last_payload = result.last_payload
                state = self._classify(last_payload)
                last_state = state
                counts[state.kind] += 1
                metrics.poll_iterations_total.inc(state=state.kind)
                logger.info(
                    f"Poll iteration {iteration}/{iteration_limit} -> {state.kind}",
                    extra={"extra_fields": {
                        "iteration": iteration,
                        "state": state.kind,
                        "attempts": result.attempts_used,
                    }}
                )

                if isinstance(state, Succeeded):
                    return finish(OutcomeStatus.BOOKED)

                if isinstance(state, Blocked) and recovery is not None:
                    self._recover(recovery, state, deadline)

            if iteration >= iteration_limit:
                break

            wait = max(0.0, iteration_start + interval - self._clock())
            if self._clock() + wait >= deadline:
                break
            if wait > 0:
                self._sleep(wait)

        logger.info(
            "Poll budget exhausted without confirmation",
            extra={"extra_fields": {
                "iterations": iterations,
                "state_counts": dict(counts),
            }}
        )
        return finish(OutcomeStatus.TIMEOUT)

    def _recover(self, recovery: RecoveryAction, state: RemoteState, deadline: float) -> None:
        """Run the recovery action, never letting it end the loop."""
        timeout = min(self._policy.per_attempt_timeout, deadline - self._clock())
        if timeout <= 0:
            return
        try:
            recovery(state, timeout)
        except Exception as e:
            logger.warning(
                f"Recovery action failed: {e}",
                extra={"extra_fields": {"error_type": type(e).__name__}}
            )
