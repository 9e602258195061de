"""
Domain models.

Booking rules, retry policies, attempt outcomes and remote states.
Uses frozen dataclasses for immutability and type safety.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from slot_booker.core.calendar import MINUTES_PER_DAY, Weekday, format_minute_of_day
from slot_booker.core.exceptions import ValidationError


# =============================================================================
# Booking rule
# =============================================================================

@dataclass(frozen=True)
class BookingRule:
    """
    What to book, when to look for it, and for whom.

    Attributes:
        target_day: Weekday of the slot to register for.
        window_start: Earliest acceptable start, in minutes since midnight.
        window_end: Latest acceptable start, in minutes since midnight.
        time_zone: IANA time zone of the booking site.
        target_url: Page of the activity on the booking site.
        dry_run: If true, the remote step stops before submitting.
        poll_budget_seconds: How long to keep polling for the slot.
        poll_interval_ms: Minimum spacing between two polls.
        actor_name: Name of the person being registered.
        actor_address: Postal address of the person being registered.
    """
    target_day: Weekday
    window_start: int
    window_end: int
    time_zone: str
    target_url: str
    dry_run: bool = False
    poll_budget_seconds: int = 540
    poll_interval_ms: int = 2500
    actor_name: str = ""
    actor_address: str = ""

    def __post_init__(self) -> None:
        last_minute = MINUTES_PER_DAY - 1
        if not 0 <= self.window_start <= last_minute:
            raise ValidationError("windowStart", f"must be within 00:00..23:59, got {self.window_start}")
        if not 0 <= self.window_end <= last_minute:
            raise ValidationError("windowEnd", f"must be within 00:00..23:59, got {self.window_end}")
        if self.window_start > self.window_end:
            raise ValidationError("windowStart", "must not be later than windowEnd")
        if not self.target_url:
            raise ValidationError("targetUrl", "is required")
        if self.poll_budget_seconds < 0:
            raise ValidationError("pollBudgetSeconds", "must not be negative")
        if self.poll_interval_ms <= 0:
            raise ValidationError("pollIntervalMs", "must be positive")
        if self.poll_interval_ms > self.poll_budget_seconds * 1000:
            raise ValidationError("pollIntervalMs", "must not exceed the poll budget")

    def to_dict(self) -> Dict[str, Any]:
        """Echo the rule using the wire field names."""
        return {
            "targetDay": self.target_day.value,
            "windowStart": format_minute_of_day(self.window_start),
            "windowEnd": format_minute_of_day(self.window_end),
            "timeZone": self.time_zone,
            "targetUrl": self.target_url,
            "dryRun": self.dry_run,
            "pollBudgetSeconds": self.poll_budget_seconds,
            "pollIntervalMs": self.poll_interval_ms,
            "actorName": self.actor_name,
            "actorAddress": self.actor_address,
        }


# =============================================================================
# Retry policy
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget and timing for one orchestrated run.

    All durations are in seconds. The sum of attempts and backoff delays
    may exceed overall_timeout: the orchestrator truncates, never extends.
    """
    max_attempts: int = 3
    per_attempt_timeout: float = 180.0
    overall_timeout: float = 540.0
    backoff_base: float = 1.0
    backoff_max: float = 8.0
    min_attempt_timeout: float = 1.0
    jitter: float = 0.2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError("maxAttempts", "must be at least 1")
        if self.per_attempt_timeout <= 0:
            raise ValidationError("perAttemptTimeoutMs", "must be positive")
        if self.overall_timeout < self.per_attempt_timeout:
            raise ValidationError("overallTimeoutMs", "must not be shorter than perAttemptTimeoutMs")
        if self.backoff_base < 0 or self.backoff_max < self.backoff_base:
            raise ValidationError("backoff", "need 0 <= backoff_base <= backoff_max")
        if self.min_attempt_timeout < 0:
            raise ValidationError("minAttemptTimeout", "must not be negative")
        if not 0 <= self.jitter < 1:
            raise ValidationError("jitter", "must be within [0, 1)")

    @classmethod
    def from_milliseconds(
        cls,
        max_attempts: int,
        per_attempt_timeout_ms: int,
        overall_timeout_ms: int,
        backoff_base_ms: int = 1000,
        backoff_max_ms: int = 8000,
    ) -> "RetryPolicy":
        """Build a policy from millisecond values as they appear in config."""
        return cls(
            max_attempts=max_attempts,
            per_attempt_timeout=per_attempt_timeout_ms / 1000.0,
            overall_timeout=overall_timeout_ms / 1000.0,
            backoff_base=backoff_base_ms / 1000.0,
            backoff_max=backoff_max_ms / 1000.0,
        )

    def bounded_by(self, seconds: float) -> "RetryPolicy":
        """
        Get a copy that never runs longer than the given budget.

        Only ever shortens timeouts. The budget must be positive.
        """
        if seconds >= self.overall_timeout:
            return self
        return replace(
            self,
            overall_timeout=seconds,
            per_attempt_timeout=min(self.per_attempt_timeout, seconds),
        )


# =============================================================================
# Attempt outcomes
# =============================================================================

class AttemptOutcome:
    """Result of one call to the unit of work."""

    kind: ClassVar[str] = "outcome"


@dataclass(frozen=True)
class Success(AttemptOutcome):
    """The remote service answered with a 2xx response."""
    kind: ClassVar[str] = "success"
    payload: Any = None
    http_status: Optional[int] = None


@dataclass(frozen=True)
class RetryableFailure(AttemptOutcome):
    """Transient failure worth another attempt."""
    kind: ClassVar[str] = "retryable"
    reason: str = ""
    http_status: Optional[int] = None


@dataclass(frozen=True)
class FatalFailure(AttemptOutcome):
    """
    Failure that must not be retried.

    Attributes:
        reason: Human readable explanation.
        http_status: Remote status code, if any.
        code: One of config_error, validation_error, remote_rejected,
            overall_timeout, unit_error.
    """
    kind: ClassVar[str] = "fatal"
    reason: str = ""
    http_status: Optional[int] = None
    code: str = "remote_rejected"


# =============================================================================
# Remote states
# =============================================================================

class RemoteState:
    """Classification of what the remote step observed on the site."""

    kind: ClassVar[str] = "state"

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class Succeeded(RemoteState):
    """The action was confirmed by the site."""
    kind: ClassVar[str] = "succeeded"
    evidence: str = ""

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class NotYetAvailable(RemoteState):
    """Registration is not open yet."""
    kind: ClassVar[str] = "not_yet_available"


@dataclass(frozen=True)
class Blocked(RemoteState):
    """Something on the site prevented the action."""
    kind: ClassVar[str] = "blocked"
    evidence: str = ""


@dataclass(frozen=True)
class Unknown(RemoteState):
    """The response could not be classified."""
    kind: ClassVar[str] = "unknown"


# =============================================================================
# Orchestration result
# =============================================================================

class OutcomeStatus(str, Enum):
    """Status reported to the caller."""
    BOOKED = "BOOKED"
    COMPLETED = "COMPLETED"
    TIMEOUT = "TIMEOUT"
    OVERALL_TIMEOUT = "OVERALL_TIMEOUT"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    REMOTE_REJECTED = "REMOTE_REJECTED"
    CONFIG_ERROR = "CONFIG_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNIT_ERROR = "UNIT_ERROR"
    # Boundary only
    UNAUTHORIZED = "UNAUTHORIZED"
    BUSY = "BUSY"
    HANDLER_ERROR = "HANDLER_ERROR"
    NOT_FOUND = "NOT_FOUND"

    @classmethod
    def for_fatal(cls, outcome: FatalFailure) -> "OutcomeStatus":
        """Map a fatal outcome code to a status."""
        return {
            "config_error": cls.CONFIG_ERROR,
            "validation_error": cls.VALIDATION_ERROR,
            "overall_timeout": cls.OVERALL_TIMEOUT,
            "unit_error": cls.UNIT_ERROR,
        }.get(outcome.code, cls.REMOTE_REJECTED)


@dataclass(frozen=True)
class OrchestrationResult:
    """
    Final result of a run, the only artifact returned to the HTTP layer.

    Attributes:
        status: Overall status.
        attempts_used: Calls made to the unit of work.
        elapsed: Wall-clock duration in seconds.
        terminal_state: Last classified remote state, if any.
        last_payload: Last payload received from the remote service.
        outcome: Last attempt outcome.
        iterations: Poll iterations performed (0 outside of polling).
        state_counts: Poll iterations per classified state kind.
        annotations: Run details added by the booking service
            (target date, selected slot).
    """
    status: OutcomeStatus
    attempts_used: int = 0
    elapsed: float = 0.0
    terminal_state: Optional[RemoteState] = None
    last_payload: Any = None
    outcome: Optional[AttemptOutcome] = None
    iterations: int = 0
    state_counts: Dict[str, int] = field(default_factory=dict)
    annotations: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.BOOKED, OutcomeStatus.COMPLETED)

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed * 1000)

    def with_changes(self, **changes: Any) -> "OrchestrationResult":
        """Get a copy with some fields replaced."""
        return replace(self, **changes)


