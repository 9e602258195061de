"""
Tests for the remote state classifier.
"""

from collections.abc import Mapping

import pytest

from slot_booker.core.classifier import classify
from slot_booker.core.models import Blocked, NotYetAvailable, Succeeded, Unknown


class ExplodingMapping(Mapping):
    """Mapping whose lookups fail."""

    def __getitem__(self, key):
        raise RuntimeError("boom")

    def __iter__(self):
        return iter(["status"])

    def __len__(self):
        return 1


class TestClassify:
    """Tests for classify."""

    def test_booked_status(self):
        state = classify({"status": "booked", "evidence": "Confirmation #42"})

        assert state == Succeeded(evidence="Confirmation #42")
        assert state.is_terminal is True

    def test_dry_run_counts_as_success(self):
        assert isinstance(classify({"status": "dry_run_ok"}), Succeeded)

    @pytest.mark.parametrize("status", ["not_open", "Not Yet Open", "not-yet-available", "slots_available"])
    def test_not_yet_statuses(self, status):
        assert classify({"status": status}) == NotYetAvailable()

    def test_blocked_status_keeps_evidence(self):
        state = classify({"status": "blocked", "message": "Overlay covers the button"})

        assert state == Blocked(evidence="Overlay covers the button")
        assert state.is_terminal is False

    def test_success_with_error_is_not_trusted(self):
        assert classify({"status": "booked", "ok": False}) == Unknown()
        assert classify({"status": "confirmed", "error": "payment failed"}) == Unknown()

    @pytest.mark.parametrize("payload", [
        {"status": "confirmed", "message": "Registration not open yet"},
        {"status": "registered", "message": "Cannot register: activity is full"},
        {"status": "booked", "evidence": "Captcha shown before checkout"},
    ])
    def test_success_status_with_negative_text_is_not_trusted(self, payload):
        assert classify(payload) == Unknown()

    def test_free_text_success(self):
        assert isinstance(classify({"message": "Booking confirmed for Wed 19:30"}), Succeeded)

    def test_free_text_negative_wins(self):
        """Blocked phrases are checked before success phrases."""
        state = classify({"message": "Booking confirmed? No: captcha required"})

        assert isinstance(state, Blocked)

    def test_free_text_not_yet(self):
        assert classify({"detail": "Registration opens Monday at 18:00"}) == NotYetAvailable()

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "booked",
        42,
        [],
        [{"status": "booked"}],
        {},
        {"status": None},
        {"status": 5},
        {"status": "something_new"},
        {"message": 12},
        ExplodingMapping(),
    ])
    def test_malformed_payloads_are_unknown(self, raw):
        assert classify(raw) == Unknown()

    def test_deterministic(self):
        payload = {"status": "waiting", "message": "not open yet"}

        assert classify(payload) == classify(payload)
