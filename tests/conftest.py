"""
Test Configuration and Fixtures.

Provides shared fixtures for all tests.
"""

from typing import Generator, List
from unittest.mock import MagicMock

import pytest
from flask import Flask
from flask.testing import FlaskClient

from slot_booker.app import create_app
from slot_booker.config import AutomationSettings, CredentialsSettings, Settings
from slot_booker.core.calendar import Weekday
from slot_booker.core.models import BookingRule, RetryPolicy
from slot_booker.infrastructure.http import AutomationClient
from slot_booker.infrastructure.metrics import reset_metrics
from slot_booker.infrastructure.run_lock import RunLock
from slot_booker.infrastructure.session_cache import SessionCache


ACTIVITY_URL = "https://app.amilia.com/store/en/ville-de-quebec1/shop/activities/6112282"


class FakeClock:
    """
    Monotonic clock driven by the test.

    Use the instance as the clock and its sleep method as the sleeper:
    sleeping advances time instantly and is recorded.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_metrics() -> Generator[None, None, None]:
    """Start every test with an empty metrics registry."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def app() -> Flask:
    """Create test Flask application."""
    test_config = {
        "TESTING": True,
    }
    return create_app(test_config)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake monotonic clock."""
    return FakeClock()


@pytest.fixture
def sample_rule() -> BookingRule:
    """Create a sample booking rule: Wednesday, 18:00-21:00, 30s of polling."""
    return BookingRule(
        target_day=Weekday.WED,
        window_start=18 * 60,
        window_end=21 * 60,
        time_zone="America/Toronto",
        target_url=ACTIVITY_URL,
        poll_budget_seconds=30,
        poll_interval_ms=10_000,
        actor_name="Alex Martin",
        actor_address="1 rue Principale, Quebec",
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Create a retry policy without jitter for predictable delays."""
    return RetryPolicy(
        max_attempts=3,
        per_attempt_timeout=5.0,
        overall_timeout=60.0,
        backoff_base=1.0,
        backoff_max=8.0,
        jitter=0.0,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create settings with automation endpoint and credentials configured."""
    return Settings(
        automation=AutomationSettings(
            base_url="https://automation.test/function",
            token="tok",
            task="book-slot",
            recovery_task="dismiss-obstruction",
        ),
        credentials=CredentialsSettings(
            username="player@example.com",
            password="hunter2",
        ),
    )


@pytest.fixture
def mock_automation_client() -> MagicMock:
    """Mock automation client."""
    return MagicMock(spec=AutomationClient)


@pytest.fixture
def run_lock() -> RunLock:
    """Create a private run lock."""
    return RunLock("test")


@pytest.fixture
def session_cache() -> SessionCache:
    """Create a private session cache."""
    return SessionCache(ttl_seconds=600)
