"""
Remote state classification.

Maps the raw payload returned by the remote automation step to a
RemoteState. Pure, total and deterministic: malformed input yields
Unknown, never an exception.

Classification is conservative. A false Succeeded ends polling with
nothing booked, while a false negative only costs one more poll, so
any contradicting signal demotes a success to Unknown.
"""

import re
from typing import Any, Mapping, Optional, Tuple

from slot_booker.core.models import (
    Blocked,
    NotYetAvailable,
    RemoteState,
    Succeeded,
    Unknown,
)


SUCCEEDED_STATUSES = frozenset([
    "booked", "registered", "confirmed", "dry_run_ok",
])

NOT_YET_STATUSES = frozenset([
    "not_open", "not_yet_open", "not_yet_available", "closed",
    "no_slots", "waiting", "slots_available",
])

BLOCKED_STATUSES = frozenset([
    "blocked", "rejected", "full", "cannot_register", "overlay",
])

SUCCEEDED_PHRASES: Tuple[str, ...] = (
    "registration confirmed",
    "booking confirmed",
    "successfully registered",
    "you are registered",
)

NOT_YET_PHRASES: Tuple[str, ...] = (
    "not open yet",
    "not yet open",
    "not yet available",
    "registration opens",
    "available soon",
)

BLOCKED_PHRASES: Tuple[str, ...] = (
    "cannot register",
    "can't register",
    "registration blocked",
    "access denied",
    "captcha",
    "activity is full",
)

TEXT_FIELDS = ("message", "evidence", "detail")

_SEPARATORS = re.compile(r"[\s\-]+")


def _normalize_status(value: Any) -> Optional[str]:
    """Lowercase a status string and unify separators to underscores."""
    if not isinstance(value, str):
        return None
    normalized = _SEPARATORS.sub("_", value.strip().lower())
    return normalized or None


def _collect_text(payload: Mapping[str, Any]) -> str:
    """Join the free-text fields of a payload, lowercased."""
    parts = []
    for key in TEXT_FIELDS:
        value = payload.get(key)
        if isinstance(value, str):
            parts.append(value.lower())
    return " | ".join(parts)


def _evidence(payload: Mapping[str, Any], fallback: str) -> str:
    for key in ("evidence", "message"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()[:500]
    return fallback


def _contradicts_success(payload: Mapping[str, Any]) -> bool:
    """A failure flag or negative wording in the text overrides a success status."""
    if payload.get("ok") is False or bool(payload.get("error")):
        return True
    return _find_phrase(_collect_text(payload), BLOCKED_PHRASES + NOT_YET_PHRASES) is not None


def _find_phrase(text: str, phrases: Tuple[str, ...]) -> Optional[str]:
    for phrase in phrases:
        if phrase in text:
            return phrase
    return None


def classify(raw: Any) -> RemoteState:
    """
    Classify a remote payload.

    Args:
        raw: Parsed response body of the remote automation step.

    Returns:
        Succeeded, NotYetAvailable, Blocked or Unknown.
    """
    if not isinstance(raw, Mapping):
        return Unknown()

    try:
        status = _normalize_status(raw.get("status"))

        if status in SUCCEEDED_STATUSES:
            if _contradicts_success(raw):
                return Unknown()
            return Succeeded(evidence=_evidence(raw, status))
        if status in BLOCKED_STATUSES:
            return Blocked(evidence=_evidence(raw, status))
        if status in NOT_YET_STATUSES:
            return NotYetAvailable()

        # Free text, negative evidence first
        text = _collect_text(raw)
        if not text:
            return Unknown()

        phrase = _find_phrase(text, BLOCKED_PHRASES)
        if phrase:
            return Blocked(evidence=_evidence(raw, phrase))
        if _find_phrase(text, NOT_YET_PHRASES):
            return NotYetAvailable()
        phrase = _find_phrase(text, SUCCEEDED_PHRASES)
        if phrase and not _contradicts_success(raw):
            return Succeeded(evidence=_evidence(raw, phrase))
    except Exception:
        # Exotic Mapping implementations can raise on access
        return Unknown()

    return Unknown()
