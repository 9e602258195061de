"""Core package - Pure booking logic with no external dependencies."""

from slot_booker.core.backoff import BackoffScheduler
from slot_booker.core.calendar import (
    Weekday,
    format_minute_of_day,
    next_target_date,
    now_utc,
    parse_time_of_day,
)
from slot_booker.core.classifier import classify
from slot_booker.core.exceptions import (
    BusinessError,
    ConfigurationError,
    InfrastructureError,
    RunInProgressError,
    SlotBookerError,
    UnauthorizedError,
    ValidationError,
)
from slot_booker.core.models import (
    AttemptOutcome,
    Blocked,
    BookingRule,
    FatalFailure,
    NotYetAvailable,
    OrchestrationResult,
    OutcomeStatus,
    RemoteState,
    RetryableFailure,
    RetryPolicy,
    Succeeded,
    Success,
    Unknown,
)
from slot_booker.core.slots import SlotCandidate, parse_candidates, select_slot

__all__ = [
    # Backoff
    "BackoffScheduler",
    # Calendar
    "Weekday",
    "format_minute_of_day",
    "next_target_date",
    "now_utc",
    "parse_time_of_day",
    # Classifier
    "classify",
    # Exceptions
    "BusinessError",
    "ConfigurationError",
    "InfrastructureError",
    "RunInProgressError",
    "SlotBookerError",
    "UnauthorizedError",
    "ValidationError",
    # Models
    "AttemptOutcome",
    "Blocked",
    "BookingRule",
    "FatalFailure",
    "NotYetAvailable",
    "OrchestrationResult",
    "OutcomeStatus",
    "RemoteState",
    "RetryableFailure",
    "RetryPolicy",
    "Succeeded",
    "Success",
    "Unknown",
    # Slots
    "SlotCandidate",
    "parse_candidates",
    "select_slot",
]
