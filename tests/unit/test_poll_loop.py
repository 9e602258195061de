"""
Tests for Poll Loop.
"""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from slot_booker.core.models import (
    Blocked,
    FatalFailure,
    OutcomeStatus,
    RetryableFailure,
    RetryPolicy,
    Success,
)
from slot_booker.infrastructure.metrics import get_metrics
from slot_booker.services.poll_loop import PollLoop, max_iterations


@pytest.fixture
def single_attempt_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=1,
        per_attempt_timeout=5.0,
        overall_timeout=600.0,
        jitter=0.0,
    )


def _answers(*payloads):
    return MagicMock(side_effect=[Success(payload=p) for p in payloads])


class TestMaxIterations:
    """Tests for the iteration bound."""

    def test_budget_over_interval(self, sample_rule):
        assert max_iterations(sample_rule) == 3

    def test_at_least_one(self, sample_rule):
        rule = replace(sample_rule, poll_budget_seconds=1, poll_interval_ms=1000)
        assert max_iterations(rule) == 1


class TestPollLoop:
    """Tests for PollLoop.poll."""

    def test_not_yet_available_times_out_after_three_iterations(
        self, clock, sample_rule, single_attempt_policy
    ):
        """30s budget with 10s interval polls at most three times."""
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = MagicMock(return_value=Success(payload={"status": "not_open"}))

        result = loop.poll(unit, sample_rule)

        assert result.status == OutcomeStatus.TIMEOUT
        assert result.iterations == 3
        assert unit.call_count == 3
        assert result.state_counts == {"not_yet_available": 3}
        assert clock.sleeps == [10.0, 10.0]

    def test_stops_on_success(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = _answers(
            {"status": "not_open"},
            {"status": "booked", "evidence": "Confirmation #42"},
        )

        result = loop.poll(unit, sample_rule)

        assert result.status == OutcomeStatus.BOOKED
        assert result.ok is True
        assert result.iterations == 2
        assert result.terminal_state.evidence == "Confirmation #42"
        assert result.state_counts == {"not_yet_available": 1, "succeeded": 1}
        assert get_metrics().poll_iterations_total.get(state="succeeded") == 1

    def test_calls_spaced_by_interval_from_iteration_start(
        self, clock, sample_rule, single_attempt_policy
    ):
        """Time spent in the call counts toward the interval."""
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)

        def slow_call(timeout):
            clock.advance(3.0)
            return Success(payload={"status": "not_open"})

        loop.poll(slow_call, sample_rule)

        assert clock.sleeps == [pytest.approx(7.0), pytest.approx(7.0)]

    def test_unknown_keeps_polling(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = _answers({"raw": "<html>"}, {"weird": True}, {"status": "booked"})

        result = loop.poll(unit, sample_rule)

        assert result.status == OutcomeStatus.BOOKED
        assert result.state_counts == {"unknown": 2, "succeeded": 1}

    def test_blocked_runs_recovery_and_continues(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = _answers({"status": "blocked", "evidence": "Cookie banner"}, {"status": "booked"})
        recovery = MagicMock()

        result = loop.poll(unit, sample_rule, recovery=recovery)

        assert result.status == OutcomeStatus.BOOKED
        recovery.assert_called_once()
        state, timeout = recovery.call_args[0]
        assert state == Blocked(evidence="Cookie banner")
        assert 0 < timeout <= single_attempt_policy.per_attempt_timeout

    def test_failing_recovery_does_not_end_loop(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = _answers({"status": "blocked"}, {"status": "booked"})
        recovery = MagicMock(side_effect=RuntimeError("overlay still there"))

        result = loop.poll(unit, sample_rule, recovery=recovery)

        assert result.status == OutcomeStatus.BOOKED
        assert result.iterations == 2

    def test_fatal_failure_ends_poll(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = MagicMock(return_value=FatalFailure(reason="HTTP 401", http_status=401))

        result = loop.poll(unit, sample_rule)

        assert result.status == OutcomeStatus.REMOTE_REJECTED
        assert result.iterations == 1
        assert result.attempts_used == 1
        assert unit.call_count == 1

    def test_exhausted_iteration_continues(self, clock, sample_rule, single_attempt_policy):
        loop = PollLoop(single_attempt_policy, clock=clock, sleep=clock.sleep)
        unit = MagicMock(side_effect=[
            RetryableFailure(reason="503", http_status=503),
            Success(payload={"status": "booked"}),
        ])

        result = loop.poll(unit, sample_rule)

        assert result.status == OutcomeStatus.BOOKED
        assert result.state_counts == {"failed": 1, "succeeded": 1}
        assert result.attempts_used == 2

    def test_poll_budget_caps_attempt_timeouts(self, clock, sample_rule):
        """Inner attempts never run past the poll budget."""
        policy = RetryPolicy(max_attempts=1, per_attempt_timeout=120.0, overall_timeout=600.0)
        loop = PollLoop(policy, clock=clock, sleep=clock.sleep)
        timeouts = []

        def unit(timeout):
            timeouts.append(timeout)
            return Success(payload={"status": "not_open"})

        loop.poll(unit, sample_rule)

        assert timeouts[0] == 30.0
        assert all(t <= 30.0 for t in timeouts)

    def test_inner_deadline_reported_as_timeout(self, clock, sample_rule):
        """Running out of poll budget mid-retry is a plain TIMEOUT."""
        policy = RetryPolicy(
            max_attempts=3,
            per_attempt_timeout=30.0,
            overall_timeout=600.0,
        )
        loop = PollLoop(policy, clock=clock, sleep=clock.sleep)

        def stall(timeout):
            clock.advance(timeout)
            return RetryableFailure(reason="timeout")

        result = loop.poll(stall, sample_rule)

        assert result.status == OutcomeStatus.TIMEOUT
        assert result.iterations == 1
