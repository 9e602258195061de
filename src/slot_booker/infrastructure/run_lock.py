"""
Run Lock.

Guarantees at most one booking run per process. Concurrent runs for the
same rule could register twice, so a second caller is turned away
instead of queued.
"""

import time
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Optional

from slot_booker.core.exceptions import RunInProgressError
from slot_booker.infrastructure.logging import get_logger


logger = get_logger(__name__)


class RunLock:
    """Non-blocking, process-wide booking run guard."""

    def __init__(self, name: str = "booking") -> None:
        self._name = name
        self._lock = Lock()
        self._acquired_at: Optional[float] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def held_for(self) -> Optional[float]:
        """Seconds since the current holder acquired the lock."""
        acquired_at = self._acquired_at
        if acquired_at is None:
            return None
        return time.monotonic() - acquired_at

    @contextmanager
    def hold(self) -> Iterator[None]:
        """
        Hold the lock for the duration of a run.

        Raises:
            RunInProgressError: If another run holds the lock.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning(
                f"Run lock '{self._name}' busy, rejecting concurrent run",
                extra={"extra_fields": {
                    "lock": self._name,
                    "held_for_seconds": self.held_for,
                }}
            )
            raise RunInProgressError()

        self._acquired_at = time.monotonic()
        try:
            yield
        finally:
            self._acquired_at = None
            self._lock.release()


# Global run lock
_run_lock: Optional[RunLock] = None


def get_run_lock() -> RunLock:
    """Get global run lock instance."""
    global _run_lock
    if _run_lock is None:
        _run_lock = RunLock()
    return _run_lock
