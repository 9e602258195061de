"""
Infrastructure Layer.

This layer contains all external dependencies and adapters:
- Logging configuration
- Metrics
- Run lock and session cache
- HTTP client (automation service)
"""

from slot_booker.infrastructure.logging import (
    get_logger,
    log_duration,
    log_event,
    log_request_context,
    logger,
    StructuredLogger,
)


__all__ = [
    "get_logger",
    "log_duration",
    "log_event",
    "log_request_context",
    "logger",
    "StructuredLogger",
]
