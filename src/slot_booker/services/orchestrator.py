"""
Retry Orchestrator.

Runs a timeout-bounded unit of work under a RetryPolicy, inside a hard
overall deadline computed once at entry.
"""

import time
from typing import Callable, Optional

from slot_booker.core.backoff import BackoffScheduler
from slot_booker.core.models import (
    AttemptOutcome,
    FatalFailure,
    OrchestrationResult,
    OutcomeStatus,
    RetryableFailure,
    RetryPolicy,
    Success,
)
from slot_booker.infrastructure.logging import get_logger
from slot_booker.infrastructure.metrics import get_metrics


logger = get_logger(__name__)

# Receives the attempt timeout in seconds and must return within it
UnitOfWork = Callable[[float], AttemptOutcome]
Clock = Callable[[], float]
Sleeper = Callable[[float], None]


class RetryOrchestrator:
    """
    Drives a unit of work until it succeeds, fails fatally, runs out of
    attempts, or runs out of time.

    Attempts are strictly sequential. Every path returns an
    OrchestrationResult; nothing raised by the unit of work escapes.
    """

    def __init__(
        self,
        backoff_factory: Callable[[RetryPolicy], BackoffScheduler] = BackoffScheduler,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._backoff_factory = backoff_factory
        self._clock = clock
        self._sleep = sleep

    def run(self, unit_of_work: UnitOfWork, policy: RetryPolicy) -> OrchestrationResult:
        """
        Run the unit of work under the policy.

        Args:
            unit_of_work: Callable taking the attempt timeout in seconds.
            policy: Attempt budget and timing.

        Returns:
            OrchestrationResult with status COMPLETED, RETRIES_EXHAUSTED,
            OVERALL_TIMEOUT or the status matching a fatal outcome.
        """
        start = self._clock()
        deadline = start + policy.overall_timeout
        backoff = self._backoff_factory(policy)
        metrics = get_metrics()

        attempts = 0
        last: Optional[AttemptOutcome] = None

        for attempt in range(1, policy.max_attempts + 1):
            remaining = deadline - self._clock()
            if remaining <= 0:
                return self._overall_timeout(start, attempts, last)

            timeout = min(policy.per_attempt_timeout, remaining)
            attempts = attempt
            last = self._invoke(unit_of_work, timeout)

            metrics.automation_attempts_total.inc(outcome=last.kind)
            logger.info(
                f"Attempt {attempt}/{policy.max_attempts} -> {last.kind}",
                extra={"extra_fields": {
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "timeout_seconds": round(timeout, 3),
                    "outcome": last.kind,
                    "http_status": getattr(last, "http_status", None),
                    "reason": getattr(last, "reason", None),
                }}
            )

            if isinstance(last, Success):
                return self._result(OutcomeStatus.COMPLETED, start, attempts, last)

            if isinstance(last, FatalFailure):
                return self._result(OutcomeStatus.for_fatal(last), start, attempts, last)

            if attempt >= policy.max_attempts:
                break

            delay = backoff.next_delay(attempt, deadline - self._clock())
            if delay is None:
                logger.warning(
                    "No time left for another attempt, giving up",
                    extra={"extra_fields": {
                        "attempt": attempt,
                        "remaining_seconds": round(deadline - self._clock(), 3),
                    }}
                )
                return self._overall_timeout(start, attempts, last)

            logger.info(
                f"Retrying in {delay:.2f}s",
                extra={"extra_fields": {
                    "attempt": attempt,
                    "backoff_seconds": round(delay, 3),
                }}
            )
            self._sleep(delay)

        return self._result(OutcomeStatus.RETRIES_EXHAUSTED, start, attempts, last)

    def _invoke(self, unit_of_work: UnitOfWork, timeout: float) -> AttemptOutcome:
        """Call the unit of work, turning exceptions into fatal outcomes."""
        try:
            outcome = unit_of_work(timeout)
        except Exception as e:
            logger.exception(
                f"Unit of work raised {type(e).__name__}: {e}",
                extra={"extra_fields": {"error_type": type(e).__name__}}
            )
            return FatalFailure(reason=f"{type(e).__name__}: {e}", code="unit_error")

        if not isinstance(outcome, (Success, RetryableFailure, FatalFailure)):
            return FatalFailure(
                reason=f"Unit of work returned {type(outcome).__name__}",
                code="unit_error",
            )
        return outcome

    def _overall_timeout(
        self,
        start: float,
        attempts: int,
        last: Optional[AttemptOutcome],
    ) -> OrchestrationResult:
        reason = "Overall deadline reached"
        if isinstance(last, (RetryableFailure, FatalFailure)) and last.reason:
            reason = f"{reason} (last: {last.reason})"
        outcome = FatalFailure(
            reason=reason,
            http_status=getattr(last, "http_status", None),
            code="overall_timeout",
        )
        return self._result(OutcomeStatus.OVERALL_TIMEOUT, start, attempts, outcome)

    def _result(
        self,
        status: OutcomeStatus,
        start: float,
        attempts: int,
        outcome: Optional[AttemptOutcome],
    ) -> OrchestrationResult:
        return OrchestrationResult(
            status=status,
            attempts_used=attempts,
            elapsed=self._clock() - start,
            last_payload=outcome.payload if isinstance(outcome, Success) else None,
            outcome=outcome,
        )
