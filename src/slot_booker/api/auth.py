"""
API Key Authentication.

Protects the booking endpoint with a shared key sent in the
x-api-key header. The key is optional: without one, the endpoint is open.
"""

import hmac
from functools import wraps
from typing import Any, Callable

from flask import request

from slot_booker.config import settings
from slot_booker.core.exceptions import UnauthorizedError
from slot_booker.infrastructure.logging import get_logger, log_event


logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"


def is_authorized(provided: str, expected: str) -> bool:
    """Compare keys in constant time. An empty expected key allows all."""
    if not expected:
        return True
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_api_key(func: Callable) -> Callable:
    """
    Decorator rejecting requests whose x-api-key does not match API_KEY.

    Raises UnauthorizedError, which the route maps to the usual
    200 envelope.

    Usage:
        @api_bp.route("/book", methods=["POST"])
        @require_api_key
        def book():
            ...
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        provided = request.headers.get(API_KEY_HEADER, "")
        if not is_authorized(provided, settings.auth.api_key):
            log_event(logger, "UNAUTHORIZED_BOOK_CALL", path=request.path)
            raise UnauthorizedError()
        return func(*args, **kwargs)

    return wrapper
