"""
Booking Service.

Runs one booking attempt for an inbound request: holds the run lock,
builds the task descriptor, and drives the remote automation step
through the poll loop or a single orchestrated run.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from slot_booker.config import Settings, settings as default_settings
from slot_booker.core.calendar import next_target_date
from slot_booker.core.classifier import classify
from slot_booker.core.exceptions import ConfigurationError, RunInProgressError, ValidationError
from slot_booker.core.models import (
    AttemptOutcome,
    BookingRule,
    FatalFailure,
    OrchestrationResult,
    OutcomeStatus,
    RemoteState,
    RetryPolicy,
    Succeeded,
    Success,
)
from slot_booker.core.slots import SlotCandidate, parse_candidates, select_slot
from slot_booker.infrastructure.http import AutomationClient, AutomationTask, get_automation_client
from slot_booker.infrastructure.logging import get_logger, log_duration, log_event
from slot_booker.infrastructure.metrics import get_metrics
from slot_booker.infrastructure.run_lock import RunLock, get_run_lock
from slot_booker.infrastructure.session_cache import SessionCache, get_session_cache, session_key
from slot_booker.services.orchestrator import Clock, RetryOrchestrator, Sleeper
from slot_booker.services.poll_loop import PollLoop


logger = get_logger(__name__)


class BookingMode(str, Enum):
    """How the remote step is driven."""
    POLL = "poll"
    ONCE = "once"


def default_policy(config: Optional[Settings] = None) -> RetryPolicy:
    """Build the retry policy from deployment configuration."""
    retry = (config or default_settings).retry
    return RetryPolicy.from_milliseconds(
        max_attempts=retry.max_attempts,
        per_attempt_timeout_ms=retry.per_attempt_timeout_ms,
        overall_timeout_ms=retry.overall_timeout_ms,
        backoff_base_ms=retry.backoff_base_ms,
        backoff_max_ms=retry.backoff_max_ms,
    )


@dataclass
class BookingRun:
    """Mutable state of one run, shared by its attempts."""
    rule: BookingRule
    target_date: str
    session_key: str
    selected_slot: Optional[SlotCandidate] = None
    recover_hint: Optional[str] = None


class BookingService:
    """
    Service for booking a slot.

    Responsible for:
    - Serializing runs with the run lock
    - Turning a BookingRule into automation task descriptors
    - Feeding session artifacts and slot choices back into later calls
    - Returning an OrchestrationResult on every path
    """

    def __init__(
        self,
        automation_client: Optional[AutomationClient] = None,
        config: Optional[Settings] = None,
        run_lock: Optional[RunLock] = None,
        session_cache: Optional[SessionCache] = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._client = automation_client or get_automation_client()
        self._config = config or default_settings
        self._run_lock = run_lock or get_run_lock()
        self._sessions = session_cache or get_session_cache()
        self._clock = clock
        self._sleep = sleep

    @log_duration("book_slot")
    def book(
        self,
        rule: BookingRule,
        policy: Optional[RetryPolicy] = None,
        mode: BookingMode = BookingMode.POLL,
    ) -> OrchestrationResult:
        """
        Try to book the slot described by the rule.

        Args:
            rule: What to book.
            policy: Retry policy, defaults to deployment configuration.
            mode: Poll until confirmed, or call the remote step once.

        Returns:
            OrchestrationResult; status BUSY if another run is active.
        """
        policy = policy or default_policy(self._config)
        metrics = get_metrics()

        log_event(
            logger, "BOOK_START",
            rule=rule.to_dict(),
            mode=mode.value,
            max_attempts=policy.max_attempts,
            overall_timeout_seconds=policy.overall_timeout,
        )

        try:
            with self._run_lock.hold():
                result = self._run(rule, policy, mode)
        except RunInProgressError:
            result = OrchestrationResult(status=OutcomeStatus.BUSY)

        metrics.booking_runs_total.inc(status=result.status.value)
        metrics.booking_run_duration_seconds.observe(result.elapsed, mode=mode.value)

        log_event(
            logger, "BOOK_DONE",
            status=result.status.value,
            ok=result.ok,
            attempts=result.attempts_used,
            iterations=result.iterations,
            elapsed_ms=result.elapsed_ms,
            state=result.terminal_state.kind if result.terminal_state else None,
        )
        return result

    def _run(
        self,
        rule: BookingRule,
        policy: RetryPolicy,
        mode: BookingMode,
    ) -> OrchestrationResult:
        self._sessions.cleanup_expired()

        try:
            target_date = next_target_date(rule.target_day, rule.time_zone).isoformat()
        except ValueError as e:
            return OrchestrationResult(
                status=OutcomeStatus.VALIDATION_ERROR,
                outcome=FatalFailure(reason=str(e), code="validation_error"),
            )

        run = BookingRun(
            rule=rule,
            target_date=target_date,
            session_key=session_key(self._config.credentials.username, rule.target_url),
        )

        def unit_of_work(timeout: float) -> AttemptOutcome:
            return self._attempt(run, self._config.automation.task, timeout)

        def recovery(state: RemoteState, timeout: float) -> None:
            self._recover(run, state, timeout)

        orchestrator = RetryOrchestrator(clock=self._clock, sleep=self._sleep)
        if mode == BookingMode.ONCE:
            result = orchestrator.run(unit_of_work, policy)
            if result.status == OutcomeStatus.COMPLETED:
                state = classify(result.last_payload)
                status = OutcomeStatus.BOOKED if isinstance(state, Succeeded) else OutcomeStatus.COMPLETED
                result = result.with_changes(status=status, terminal_state=state)
        else:
            loop = PollLoop(policy, orchestrator=orchestrator, clock=self._clock, sleep=self._sleep)
            result = loop.poll(unit_of_work, rule, recovery=recovery)

        return result.with_changes(annotations={
            "targetDate": run.target_date,
            "selectedSlot": run.selected_slot.to_dict() if run.selected_slot else None,
        })

    def _attempt(self, run: BookingRun, task_name: str, timeout: float) -> AttemptOutcome:
        """One call to the remote step."""
        try:
            context = self._build_context(run)
            outcome = self._client.execute(AutomationTask(task=task_name, context=context), timeout)
        except ConfigurationError as e:
            logger.error(
                f"Configuration error: {e.message}",
                extra={"extra_fields": {"config_name": e.config_name}}
            )
            return FatalFailure(reason=e.message, code="config_error")
        except ValidationError as e:
            return FatalFailure(reason=e.message, code="validation_error")

        if isinstance(outcome, Success):
            self._absorb(run, outcome.payload)
        return outcome

    def _recover(self, run: BookingRun, state: RemoteState, timeout: float) -> None:
        """Ask the remote step to clear whatever blocked the last poll."""
        run.recover_hint = getattr(state, "evidence", None) or state.kind
        outcome = self._attempt(run, self._config.automation.recovery_task, timeout)
        logger.info(
            f"Recovery action -> {outcome.kind}",
            extra={"extra_fields": {
                "outcome": outcome.kind,
                "evidence": run.recover_hint,
            }}
        )
        run.recover_hint = None

    def _build_context(self, run: BookingRun) -> Dict[str, Any]:
        """
        Build the context passed to the remote script.

        Raises:
            ConfigurationError: If site credentials are missing.
        """
        credentials = self._config.credentials
        if not credentials.is_configured:
            raise ConfigurationError(
                "SITE_USERNAME/SITE_PASSWORD",
                "Missing booking site credentials",
            )

        session = self._sessions.get(run.session_key)
        if session is not None:
            logger.debug("Reusing cached session")

        return {
            "credentials": {
                "username": credentials.username,
                "password": credentials.password,
            },
            "targetUrl": run.rule.target_url,
            "targetDate": run.target_date,
            "rule": run.rule.to_dict(),
            "selectedSlot": run.selected_slot.to_dict() if run.selected_slot else None,
            "session": session,
            "recover": run.recover_hint,
        }

    def _absorb(self, run: BookingRun, payload: Any) -> None:
        """Keep the session artifact and slot choice from a remote answer."""
        if not isinstance(payload, Mapping):
            return

        session = payload.get("session")
        if session is not None:
            self._sessions.set(run.session_key, session)

        candidates = parse_candidates(payload.get("candidates"))
        if not candidates:
            return

        selected = select_slot(candidates, run.rule.window_start, run.rule.window_end)
        if selected != run.selected_slot:
            logger.info(
                f"Selected slot: {selected.label if selected else 'none in window'}",
                extra={"extra_fields": {
                    "candidates": [c.label for c in candidates],
                    "selected": selected.to_dict() if selected else None,
                }}
            )
        run.selected_slot = selected
