"""
Services Layer.

Booking orchestration:
- Retry orchestration under a deadline
- Polling until the slot is confirmed
- Booking runs (locking, task context, session reuse)
"""

from slot_booker.services.booking import BookingMode, BookingService, default_policy
from slot_booker.services.orchestrator import RetryOrchestrator, UnitOfWork
from slot_booker.services.poll_loop import PollLoop, max_iterations


__all__ = [
    "BookingMode",
    "BookingService",
    "default_policy",
    "max_iterations",
    "PollLoop",
    "RetryOrchestrator",
    "UnitOfWork",
]
