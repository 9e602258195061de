"""
HTTP Client Package.

External service clients:
- Remote browser-automation service
"""

from slot_booker.infrastructure.http.automation_client import (
    AutomationClient,
    AutomationTask,
    get_automation_client,
    is_retryable_status,
)


__all__ = [
    "AutomationClient",
    "AutomationTask",
    "get_automation_client",
    "is_retryable_status",
]
