"""
Tests for Retry Orchestrator.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from slot_booker.core.models import (
    FatalFailure,
    OutcomeStatus,
    RetryableFailure,
    RetryPolicy,
    Success,
)
from slot_booker.infrastructure.http import AutomationClient, AutomationTask
from slot_booker.infrastructure.metrics import get_metrics
from slot_booker.services.orchestrator import RetryOrchestrator


def _response(status_code, body=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.encoding = "utf-8"
    response.iter_content.return_value = [json.dumps(body).encode("utf-8")]
    return response


class TestRetryOrchestrator:
    """Tests for RetryOrchestrator.run."""

    def test_success_on_first_attempt(self, clock, fast_policy):
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        unit = MagicMock(return_value=Success(payload={"status": "booked"}))

        result = orchestrator.run(unit, fast_policy)

        assert result.status == OutcomeStatus.COMPLETED
        assert result.attempts_used == 1
        assert result.last_payload == {"status": "booked"}
        assert clock.sleeps == []

    def test_rate_limited_twice_then_success(self, clock, fast_policy):
        """429 twice then a 2xx answer completes after three attempts."""
        client = AutomationClient(endpoint_url="https://automation.test/function")
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        task = AutomationTask(task="book-slot", context={})

        with patch("requests.Session.post") as mock_post:
            mock_post.side_effect = [
                _response(429, {"message": "slow down"}),
                _response(429, {"message": "slow down"}),
                _response(200, {"status": "booked"}),
            ]
            result = orchestrator.run(lambda timeout: client.execute(task, timeout), fast_policy)

        assert result.status == OutcomeStatus.COMPLETED
        assert result.attempts_used == 3
        assert isinstance(result.outcome, Success)
        assert result.last_payload == {"status": "booked"}
        assert clock.sleeps == [1.0, 2.0]

    def test_stalled_attempt_leaves_no_room_for_retry(self, clock):
        """A 4s stall out of a 5s budget ends as overall timeout, one attempt."""
        policy = RetryPolicy(
            max_attempts=3,
            per_attempt_timeout=4.0,
            overall_timeout=5.0,
            backoff_base=1.0,
            backoff_max=8.0,
        )
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)

        def stall(timeout):
            clock.advance(timeout)
            return RetryableFailure(reason="Automation timeout")

        result = orchestrator.run(stall, policy)

        assert result.status == OutcomeStatus.OVERALL_TIMEOUT
        assert result.attempts_used == 1
        assert isinstance(result.outcome, FatalFailure)
        assert result.outcome.code == "overall_timeout"
        assert clock.sleeps == []

    def test_always_retryable_is_bounded(self, clock):
        """Never more than max_attempts, never much past the deadline."""
        policy = RetryPolicy(
            max_attempts=10,
            per_attempt_timeout=5.0,
            overall_timeout=20.0,
            backoff_base=1.0,
            backoff_max=8.0,
        )
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        calls = []

        def always_failing(timeout):
            calls.append(timeout)
            clock.advance(timeout)
            return RetryableFailure(reason="503")

        result = orchestrator.run(always_failing, policy)

        assert len(calls) <= policy.max_attempts
        assert result.attempts_used == len(calls)
        assert result.elapsed <= policy.overall_timeout + policy.backoff_max
        assert result.status in (OutcomeStatus.OVERALL_TIMEOUT, OutcomeStatus.RETRIES_EXHAUSTED)

    def test_retries_exhausted(self, clock, fast_policy):
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        unit = MagicMock(return_value=RetryableFailure(reason="502", http_status=502))

        result = orchestrator.run(unit, fast_policy)

        assert result.status == OutcomeStatus.RETRIES_EXHAUSTED
        assert result.attempts_used == 3
        assert unit.call_count == 3
        assert clock.sleeps == [1.0, 2.0]
        assert get_metrics().automation_attempts_total.get(outcome="retryable") == 3

    def test_attempt_timeout_shrinks_with_budget(self, clock):
        """Each attempt gets min(per_attempt_timeout, remaining)."""
        policy = RetryPolicy(
            max_attempts=3,
            per_attempt_timeout=6.0,
            overall_timeout=10.0,
            backoff_base=1.0,
            backoff_max=1.0,
            jitter=0.0,
        )
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        timeouts = []

        def unit(timeout):
            timeouts.append(timeout)
            clock.advance(timeout)
            return RetryableFailure(reason="timeout")

        orchestrator.run(unit, policy)

        assert timeouts == [6.0, pytest.approx(3.0)]

    @pytest.mark.parametrize("code,status", [
        ("config_error", OutcomeStatus.CONFIG_ERROR),
        ("validation_error", OutcomeStatus.VALIDATION_ERROR),
        ("remote_rejected", OutcomeStatus.REMOTE_REJECTED),
    ])
    def test_fatal_is_never_retried(self, clock, fast_policy, code, status):
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        unit = MagicMock(return_value=FatalFailure(reason="nope", code=code))

        result = orchestrator.run(unit, fast_policy)

        assert result.status == status
        assert result.attempts_used == 1
        assert unit.call_count == 1
        assert clock.sleeps == []

    def test_raising_unit_becomes_unit_error(self, clock, fast_policy):
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)
        unit = MagicMock(side_effect=RuntimeError("script crashed"))

        result = orchestrator.run(unit, fast_policy)

        assert result.status == OutcomeStatus.UNIT_ERROR
        assert result.attempts_used == 1
        assert "script crashed" in result.outcome.reason

    def test_unexpected_return_becomes_unit_error(self, clock, fast_policy):
        orchestrator = RetryOrchestrator(clock=clock, sleep=clock.sleep)

        result = orchestrator.run(lambda timeout: None, fast_policy)

        assert result.status == OutcomeStatus.UNIT_ERROR
        assert result.attempts_used == 1
