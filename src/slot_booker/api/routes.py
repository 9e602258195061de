"""
Flask API Routes.

Defines all HTTP endpoints for the booking service.
Every response, including errors and unknown routes, uses status 200.
"""

from typing import Any, Dict, Tuple

from flask import Blueprint, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from slot_booker import __version__
from slot_booker.api.auth import require_api_key
from slot_booker.api.responses import build_book_response, build_error_response
from slot_booker.api.validation import BookRequest
from slot_booker.core.calendar import now_utc
from slot_booker.core.exceptions import SlotBookerError
from slot_booker.infrastructure.logging import get_logger, log_event
from slot_booker.infrastructure.metrics import metrics_endpoint
from slot_booker.services import BookingService


logger = get_logger(__name__)


api_bp = Blueprint("api", __name__)


def _validation_message(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "body"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


# ============================================================================
# Health Check
# ============================================================================

@api_bp.route("/health", methods=["GET"])
def health_check() -> Tuple[Dict[str, Any], int]:
    """
    Health check endpoint for Cloud Run.

    Returns:
        Health status response.
    """
    return {
        "ok": True,
        "status": "healthy",
        "service": "slot-booker",
        "version": __version__,
        "at": now_utc().isoformat(),
    }, 200


@api_bp.route("/", methods=["GET"])
def root() -> Tuple[Dict[str, Any], int]:
    """Root endpoint, same answer as /health."""
    return health_check()


@api_bp.route("/metrics", methods=["GET"])
def metrics():
    """
    Prometheus metrics endpoint.
    """
    return metrics_endpoint()


# ============================================================================
# Booking
# ============================================================================

@api_bp.route("/book", methods=["POST"])
@require_api_key
def book() -> Tuple[Dict[str, Any], int]:
    """
    Run one booking attempt, called by Cloud Scheduler.

    Request body (JSON, every field optional):
        targetDay, windowStart/eveningStart, windowEnd/eveningEnd, timeZone,
        targetUrl/activityUrl, dryRun, pollBudgetSeconds/pollSeconds,
        pollIntervalMs, actorName/playerName, actorAddress/addressFull,
        maxAttempts, perAttemptTimeoutMs, overallTimeoutMs, mode.

    Returns:
        {ok, status, attempts, elapsedMs, rule, detail}, always with 200.
    """
    payload: Any = {}
    if request.get_data(cache=True).strip():
        payload = request.get_json(force=True, silent=True)
        if payload is None:
            return build_error_response("VALIDATION_ERROR", "Request body is not valid JSON")
    if not isinstance(payload, dict):
        return build_error_response("VALIDATION_ERROR", "Request body must be a JSON object")

    try:
        data = BookRequest.model_validate(payload)
        rule = data.to_rule()
        policy = data.to_policy()
    except PydanticValidationError as e:
        message = _validation_message(e)
        logger.warning(
            f"Invalid booking request: {message}",
            extra={"extra_fields": {"error_count": e.error_count()}}
        )
        return build_error_response("VALIDATION_ERROR", message)
    except SlotBookerError as e:
        logger.warning(
            f"Invalid booking request: {e.message}",
            extra={"extra_fields": {"error_type": type(e).__name__, **e.details}}
        )
        return build_error_response(e.status, e.message, **e.details)

    service = BookingService()
    result = service.book(rule, policy=policy, mode=data.mode)
    return build_book_response(result, rule)


# ============================================================================
# Error Handlers
# ============================================================================

@api_bp.errorhandler(SlotBookerError)
def handle_slot_booker_error(error: SlotBookerError) -> Tuple[Dict[str, Any], int]:
    """Handle known errors raised around a run."""
    logger.warning(
        f"{type(error).__name__}: {error.message}",
        extra={"extra_fields": {"error_type": type(error).__name__, "status": error.status}}
    )
    return build_error_response(error.status, error.message)


@api_bp.app_errorhandler(404)
@api_bp.app_errorhandler(405)
def handle_not_found(error: HTTPException) -> Tuple[Dict[str, Any], int]:
    """Unknown routes and methods still answer 200."""
    return {
        "ok": False,
        "status": "NOT_FOUND",
        "path": request.path,
        "method": request.method,
    }, 200


@api_bp.errorhandler(Exception)
def handle_unexpected_error(error: Exception) -> Tuple[Dict[str, Any], int]:
    """Handle unexpected errors, still with 200."""
    if isinstance(error, HTTPException) and error.code in (404, 405):
        return handle_not_found(error)
    logger.exception(
        f"Unexpected error: {error}",
        extra={"extra_fields": {"error_type": type(error).__name__}}
    )
    log_event(logger, "BOOK_HANDLER_ERROR", message=str(error))
    return build_error_response("HANDLER_ERROR", str(error) or type(error).__name__)
