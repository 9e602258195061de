"""
API Request Validation.

Uses Pydantic for request payload validation.
Fields missing from the request fall back to deployment configuration.
"""

import re
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from slot_booker.config import settings
from slot_booker.core.calendar import Weekday, get_zone
from slot_booker.core.models import BookingRule, RetryPolicy
from slot_booker.services.booking import BookingMode


_HHMM_PATTERN = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")


def parse_hhmm(value: Any) -> int:
    """
    Parse an "HH:MM" time of day into minutes since midnight.

    Raises:
        ValueError: If the value is not a valid 24h time.
    """
    if isinstance(value, str):
        match = _HHMM_PATTERN.match(value.strip())
        if match:
            hour, minute = int(match.group("hour")), int(match.group("minute"))
            if hour <= 23 and minute <= 59:
                return hour * 60 + minute
    raise ValueError(f"must be a time of day formatted HH:MM, got {value!r}")


class BookRequest(BaseModel):
    """Request body for the /book endpoint."""

    model_config = ConfigDict(
        populate_by_name=True,
        validate_default=True,
        extra="ignore",
    )

    target_day: Weekday = Field(
        default_factory=lambda: settings.booking.target_day,
        validation_alias=AliasChoices("targetDay", "target_day"),
    )
    window_start: int = Field(
        default_factory=lambda: settings.booking.window_start,
        validation_alias=AliasChoices("windowStart", "eveningStart", "window_start"),
    )
    window_end: int = Field(
        default_factory=lambda: settings.booking.window_end,
        validation_alias=AliasChoices("windowEnd", "eveningEnd", "window_end"),
    )
    time_zone: str = Field(
        default_factory=lambda: settings.booking.time_zone,
        validation_alias=AliasChoices("timeZone", "time_zone"),
    )
    target_url: str = Field(
        default_factory=lambda: settings.booking.target_url,
        validation_alias=AliasChoices("targetUrl", "activityUrl", "target_url"),
    )
    dry_run: bool = Field(
        default=False,
        validation_alias=AliasChoices("dryRun", "dry_run"),
    )
    poll_budget_seconds: int = Field(
        default_factory=lambda: settings.booking.poll_budget_seconds,
        ge=1,
        le=3600,
        validation_alias=AliasChoices("pollBudgetSeconds", "pollSeconds", "poll_budget_seconds"),
    )
    poll_interval_ms: int = Field(
        default_factory=lambda: settings.booking.poll_interval_ms,
        ge=100,
        le=600_000,
        validation_alias=AliasChoices("pollIntervalMs", "poll_interval_ms"),
    )
    actor_name: str = Field(
        default_factory=lambda: settings.booking.actor_name,
        max_length=200,
        validation_alias=AliasChoices("actorName", "playerName", "actor_name"),
    )
    actor_address: str = Field(
        default_factory=lambda: settings.booking.actor_address,
        max_length=500,
        validation_alias=AliasChoices("actorAddress", "addressFull", "actor_address"),
    )

    # Retry overrides
    max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        le=10,
        validation_alias=AliasChoices("maxAttempts", "max_attempts"),
    )
    per_attempt_timeout_ms: Optional[int] = Field(
        default=None,
        ge=1_000,
        validation_alias=AliasChoices("perAttemptTimeoutMs", "per_attempt_timeout_ms"),
    )
    overall_timeout_ms: Optional[int] = Field(
        default=None,
        ge=1_000,
        le=3_600_000,
        validation_alias=AliasChoices("overallTimeoutMs", "overall_timeout_ms"),
    )
    mode: BookingMode = BookingMode.POLL

    @field_validator("target_day", mode="before")
    @classmethod
    def validate_target_day(cls, v: Any) -> Weekday:
        """Accept full or abbreviated weekday names."""
        if not isinstance(v, (str, Weekday)):
            raise ValueError("must be a weekday name")
        return Weekday.parse(v)

    @field_validator("window_start", "window_end", mode="before")
    @classmethod
    def validate_time_of_day(cls, v: Any) -> int:
        return parse_hhmm(v)

    @field_validator("time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        v = v.strip()
        get_zone(v)
        return v

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v: str) -> str:
        """Only activity pages of the booking site are accepted."""
        v = v.strip()
        if not v:
            raise ValueError("target URL cannot be empty")
        pattern = settings.booking.target_url_pattern
        if pattern and not re.match(pattern, v):
            raise ValueError("target URL is not an activity page of the booking site")
        return v

    @field_validator("actor_name", "actor_address")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def validate_window(self) -> "BookRequest":
        if self.window_start > self.window_end:
            raise ValueError("windowStart must not be later than windowEnd")
        if self.poll_interval_ms > self.poll_budget_seconds * 1000:
            raise ValueError("pollIntervalMs must not exceed the poll budget")
        return self

    def to_rule(self) -> BookingRule:
        """Build the domain booking rule."""
        return BookingRule(
            target_day=self.target_day,
            window_start=self.window_start,
            window_end=self.window_end,
            time_zone=self.time_zone,
            target_url=self.target_url,
            dry_run=self.dry_run,
            poll_budget_seconds=self.poll_budget_seconds,
            poll_interval_ms=self.poll_interval_ms,
            actor_name=self.actor_name,
            actor_address=self.actor_address,
        )

    def to_policy(self) -> RetryPolicy:
        """
        Build the retry policy, overrides first, then configuration.

        Raises:
            ValidationError: If the combined values are inconsistent.
        """
        retry = settings.retry
        return RetryPolicy.from_milliseconds(
            max_attempts=self.max_attempts or retry.max_attempts,
            per_attempt_timeout_ms=self.per_attempt_timeout_ms or retry.per_attempt_timeout_ms,
            overall_timeout_ms=self.overall_timeout_ms or retry.overall_timeout_ms,
            backoff_base_ms=retry.backoff_base_ms,
            backoff_max_ms=retry.backoff_max_ms,
        )
