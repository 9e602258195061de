"""
Custom exceptions for the slot booker service.

Provides a hierarchy of business and infrastructure exceptions.
Inside the orchestration core they are converted into typed outcomes;
at the HTTP boundary they map to a status string, never to a non-200 code.
"""

from typing import Optional


class SlotBookerError(Exception):
    """Base exception for all slot booker errors."""

    status = "HANDLER_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Business Errors
# =============================================================================

class BusinessError(SlotBookerError):
    """Base exception for request-level business errors."""
    pass


class ValidationError(BusinessError):
    """Raised when a booking rule or retry policy is malformed."""

    status = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(
            f"Validation error on '{field}': {message}",
            {"field": field}
        )
        self.field = field


class UnauthorizedError(BusinessError):
    """Raised when the inbound API key does not match."""

    status = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized (invalid x-api-key)"):
        super().__init__(message)


class RunInProgressError(BusinessError):
    """Raised when another booking run already holds the run lock."""

    status = "BUSY"

    def __init__(self, message: str = "A booking run is already in progress"):
        super().__init__(message)


# =============================================================================
# Infrastructure Errors
# =============================================================================

class InfrastructureError(SlotBookerError):
    """Base exception for infrastructure errors."""
    pass


class ConfigurationError(InfrastructureError):
    """Raised when a required configuration is missing."""

    status = "CONFIG_ERROR"

    def __init__(self, config_name: str, message: Optional[str] = None):
        msg = message or f"Configuration missing: {config_name}"
        super().__init__(msg, {"config_name": config_name})
        self.config_name = config_name
