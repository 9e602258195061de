"""
Boundary Response Mapping.

The triggering scheduler must never see a failure status code, so every
result is flattened here into a 200 JSON envelope. Internally, failures
stay typed; this is the only place they become {ok, status}.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from slot_booker.core.models import (
    BookingRule,
    FatalFailure,
    OrchestrationResult,
    RetryableFailure,
    Success,
)


_DEFAULT_ERRORS = {
    "BUSY": "A booking run is already in progress",
    "TIMEOUT": "Poll budget exhausted without confirmation",
}


# Remote payload keys kept server-side (session cookies, storage state)
PRIVATE_PAYLOAD_KEYS = frozenset(["session"])


def _public_payload(payload: Any) -> Any:
    if isinstance(payload, Mapping):
        return {k: v for k, v in payload.items() if k not in PRIVATE_PAYLOAD_KEYS}
    return payload


def _outcome_detail(result: OrchestrationResult) -> Dict[str, Any]:
    outcome = result.outcome
    if outcome is None:
        return {}
    detail: Dict[str, Any] = {"outcome": outcome.kind}
    if isinstance(outcome, (RetryableFailure, FatalFailure)):
        detail["reason"] = outcome.reason
    if isinstance(outcome, FatalFailure):
        detail["code"] = outcome.code
    if isinstance(outcome, (Success, RetryableFailure, FatalFailure)) and outcome.http_status is not None:
        detail["httpStatus"] = outcome.http_status
    return detail


def build_book_response(
    result: OrchestrationResult,
    rule: Optional[BookingRule] = None,
) -> Tuple[Dict[str, Any], int]:
    """
    Map an orchestration result to the /book response.

    Args:
        result: Result of the booking run.
        rule: Rule that was run, echoed back when known.

    Returns:
        Tuple of (JSON body, 200).
    """
    detail = _outcome_detail(result)
    if result.terminal_state is not None:
        detail["state"] = result.terminal_state.kind
        evidence = getattr(result.terminal_state, "evidence", "")
        if evidence:
            detail["evidence"] = evidence
    if result.iterations:
        detail["iterations"] = result.iterations
        detail["stateCounts"] = dict(result.state_counts)
    detail.update(result.annotations)
    if result.last_payload is not None:
        detail["remote"] = _public_payload(result.last_payload)

    body: Dict[str, Any] = {
        "ok": result.ok,
        "status": result.status.value,
        "attempts": result.attempts_used,
        "elapsedMs": result.elapsed_ms,
        "rule": rule.to_dict() if rule else None,
        "detail": detail,
    }
    if not result.ok:
        body["error"] = getattr(result.outcome, "reason", "") or _DEFAULT_ERRORS.get(
            result.status.value, result.status.value
        )
    return body, 200


def build_error_response(
    status: str,
    message: str,
    rule: Optional[BookingRule] = None,
    **extra: Any,
) -> Tuple[Dict[str, Any], int]:
    """Build the envelope for failures caught before or around a run."""
    body: Dict[str, Any] = {
        "ok": False,
        "status": status,
        "attempts": 0,
        "elapsedMs": 0,
        "rule": rule.to_dict() if rule else None,
        "detail": extra,
        "error": message,
    }
    return body, 200
