"""
Slot selection.

Chooses which of the candidate time slots reported by the remote step
to act on, given the rule's time window.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from slot_booker.core.calendar import MINUTES_PER_DAY, format_minute_of_day, parse_time_of_day


@dataclass(frozen=True)
class SlotCandidate:
    """A slot offered on the booking page."""
    label: str
    start_minute_of_day: Optional[int] = None

    @classmethod
    def from_label(cls, label: str) -> "SlotCandidate":
        """Create a candidate by parsing the start time out of its label."""
        return cls(label=label, start_minute_of_day=parse_time_of_day(label))

    @classmethod
    def from_payload(cls, data: Any) -> Optional["SlotCandidate"]:
        """
        Create a candidate from a remote payload entry.

        Accepts a bare label string or a mapping with "label" and an
        optional "startMinuteOfDay". Returns None for unusable entries.
        """
        if isinstance(data, str):
            return cls.from_label(data)
        if not isinstance(data, Mapping):
            return None

        label = data.get("label")
        if not isinstance(label, str) or not label.strip():
            return None

        start = data.get("startMinuteOfDay")
        if isinstance(start, bool) or not isinstance(start, int) or not 0 <= start < MINUTES_PER_DAY:
            start = parse_time_of_day(label)
        return cls(label=label, start_minute_of_day=start)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "startMinuteOfDay": self.start_minute_of_day,
            "start": (
                format_minute_of_day(self.start_minute_of_day)
                if self.start_minute_of_day is not None
                else None
            ),
        }


def parse_candidates(raw: Any) -> List[SlotCandidate]:
    """Parse the "candidates" list of a remote payload, dropping bad entries."""
    if not isinstance(raw, (list, tuple)):
        return []
    candidates = (SlotCandidate.from_payload(item) for item in raw)
    return [c for c in candidates if c is not None]


def select_slot(
    candidates: Sequence[SlotCandidate],
    window_start: int,
    window_end: int,
) -> Optional[SlotCandidate]:
    """
    Pick the candidate to act on.

    The earliest candidate starting within [window_start, window_end]
    wins; ties on start time are broken by label so that the result
    does not depend on input order.

    When no candidate carries a parseable start time at all, the first
    candidate in original order is returned: acting on something
    plausible beats missing a slot that will not come back for a week.
    When times are known but none falls in the window, nothing is
    selected.

    Args:
        candidates: Slots reported by the remote step.
        window_start: Window start, minutes since midnight (inclusive).
        window_end: Window end, minutes since midnight (inclusive).

    Returns:
        The selected candidate, or None.
    """
    if not candidates:
        return None

    timed = [c for c in candidates if c.start_minute_of_day is not None]
    if not timed:
        return candidates[0]

    in_window = [
        c for c in timed
        if window_start <= c.start_minute_of_day <= window_end
    ]
    if not in_window:
        return None

    return min(in_window, key=lambda c: (c.start_minute_of_day, c.label))
