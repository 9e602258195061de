"""
Calendar helpers.

Weekday names, time-of-day parsing and target date resolution.
Pure logic with no external dependencies.
"""

import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


MINUTES_PER_DAY = 24 * 60

# 19:30, 7:30 pm, 7 PM, 19h30
_TIME_PATTERN = re.compile(
    r"(?<!\d)(?P<hour>\d{1,2})\s*(?:(?::|h)\s*(?P<minute>\d{2}))?\s*(?P<ampm>[ap]\.?\s*m\.?)?(?!\w)",
    re.IGNORECASE,
)


class Weekday(str, Enum):
    """Day of the week, ordered like datetime.weekday()."""
    MON = "Monday"
    TUE = "Tuesday"
    WED = "Wednesday"
    THU = "Thursday"
    FRI = "Friday"
    SAT = "Saturday"
    SUN = "Sunday"

    @property
    def index(self) -> int:
        """Index compatible with datetime.weekday() (Monday=0)."""
        return list(Weekday).index(self)

    @classmethod
    def parse(cls, value: Union[str, "Weekday"]) -> "Weekday":
        """
        Parse a weekday from a full or abbreviated name.

        Args:
            value: "Wednesday", "wed", "WED", or a Weekday.

        Returns:
            The matching Weekday.

        Raises:
            ValueError: If the name is not recognized.
        """
        if isinstance(value, Weekday):
            return value
        key = str(value).strip().lower()
        for day in cls:
            if key in (day.value.lower(), day.name.lower()):
                return day
        raise ValueError(f"unknown weekday: {value!r}")


def now_utc() -> datetime:
    """Get the current UTC datetime."""
    return datetime.now(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    """
    Resolve an IANA time zone name.

    Raises:
        ValueError: If the zone does not exist.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown time zone: {name!r}") from e


def parse_time_of_day(text: str) -> Optional[int]:
    """
    Extract the first time of day found in a label.

    Accepts 24h ("19:30", "19h30") and 12h ("7:30 PM", "7 pm") forms.
    A bare number without minutes or am/pm is not treated as a time.

    Args:
        text: Free text such as "Wed 19:30 - 20:30".

    Returns:
        Minutes since midnight (0..1439), or None when nothing parses.
    """
    if not isinstance(text, str):
        return None

    for match in _TIME_PATTERN.finditer(text):
        hour = int(match.group("hour"))
        minute_text = match.group("minute")
        ampm = match.group("ampm")

        if minute_text is None and ampm is None:
            continue

        minute = int(minute_text) if minute_text else 0
        if minute > 59:
            continue

        if ampm:
            if not 1 <= hour <= 12:
                continue
            hour = hour % 12
            if ampm.lower().startswith("p"):
                hour += 12
        elif hour > 23:
            continue

        return hour * 60 + minute

    return None


def format_minute_of_day(minute_of_day: int) -> str:
    """Format minutes since midnight as HH:MM."""
    hours, minutes = divmod(minute_of_day, 60)
    return f"{hours:02d}:{minutes:02d}"


def next_target_date(
    target_day: Weekday,
    time_zone: str,
    now: Optional[datetime] = None,
) -> date:
    """
    Get the next date falling on the target weekday.

    Today counts when it is already the target day.
    The date is computed in the rule's time zone, not in UTC.

    Args:
        target_day: The weekday to reach.
        time_zone: IANA time zone name.
        now: Reference instant (defaults to the current time).

    Returns:
        The target date.
    """
    local_now = (now or now_utc()).astimezone(get_zone(time_zone))
    days_ahead = (target_day.index - local_now.weekday()) % 7
    return local_now.date() + timedelta(days=days_ahead)
