"""
Tests for the automation service client.
"""

import itertools
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from slot_booker.core.exceptions import ConfigurationError
from slot_booker.core.models import FatalFailure, RetryableFailure, Success
from slot_booker.infrastructure.http import AutomationClient, AutomationTask, is_retryable_status
from slot_booker.infrastructure.metrics import get_metrics


ENDPOINT = "https://automation.test/function?token=tok"


def _response(status_code, body=None, text=None, chunks=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.encoding = "utf-8"
    if chunks is None:
        content = text if text is not None else json.dumps(body)
        chunks = [content.encode("utf-8")]
    response.iter_content.return_value = chunks
    return response


@pytest.fixture
def task() -> AutomationTask:
    return AutomationTask(task="book-slot", context={"targetUrl": "https://site.test/a/1"})


@pytest.fixture
def mock_post():
    with patch("requests.Session.post") as mock:
        yield mock


class TestIsRetryableStatus:

    @pytest.mark.parametrize("code", [408, 429, 500, 502, 503, 504, 599])
    def test_retryable(self, code):
        assert is_retryable_status(code) is True

    @pytest.mark.parametrize("code", [400, 401, 403, 404, 422])
    def test_not_retryable(self, code):
        assert is_retryable_status(code) is False


class TestAutomationClient:
    """Tests for AutomationClient.execute."""

    def test_sends_task_with_timeout(self, mock_post, task):
        mock_post.return_value = _response(200, {"status": "not_open"})

        AutomationClient(endpoint_url=ENDPOINT).execute(task, 12.5)

        mock_post.assert_called_once_with(
            ENDPOINT,
            json={"task": "book-slot", "context": {"targetUrl": "https://site.test/a/1"}},
            timeout=12.5,
            stream=True,
        )

    def test_body_split_across_chunks(self, mock_post, task):
        mock_post.return_value = _response(200, chunks=[b'{"status": ', b'"booked"}'])

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert outcome == Success(payload={"status": "booked"}, http_status=200)
        mock_post.return_value.close.assert_called_once()

    def test_slow_body_hits_attempt_deadline(self, mock_post, task):
        response = _response(200, chunks=[b'{"status": ', b'"booked"', b"}"])
        mock_post.return_value = response

        # Each clock read advances 6s: start=0, deadline=10, second chunk read at 12
        with patch(
            "slot_booker.infrastructure.http.automation_client.time.monotonic",
            side_effect=itertools.count(0, 6),
        ):
            outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert isinstance(outcome, RetryableFailure)
        assert "attempt timeout" in outcome.reason
        response.close.assert_called_once()
        assert get_metrics().external_requests_total.get(service="automation", status="timeout") == 1

    def test_success_json(self, mock_post, task):
        mock_post.return_value = _response(200, {"status": "booked"})

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert outcome == Success(payload={"status": "booked"}, http_status=200)
        assert get_metrics().external_requests_total.get(service="automation", status="success") == 1

    def test_success_not_json(self, mock_post, task):
        mock_post.return_value = _response(200, text="<html>done</html>")

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert outcome == Success(payload={"raw": "<html>done</html>"}, http_status=200)

    @pytest.mark.parametrize("code", [408, 429, 503])
    def test_retryable_status(self, mock_post, task, code):
        mock_post.return_value = _response(code, {"message": "try later"})

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert isinstance(outcome, RetryableFailure)
        assert outcome.http_status == code

    def test_client_error_is_fatal(self, mock_post, task):
        mock_post.return_value = _response(401, {"message": "bad token"})

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert isinstance(outcome, FatalFailure)
        assert outcome.code == "remote_rejected"
        assert outcome.http_status == 401
        assert "bad token" in outcome.reason

    @pytest.mark.parametrize("error", [
        requests.exceptions.ReadTimeout("read timed out"),
        requests.exceptions.ConnectionError("connection reset"),
    ])
    def test_transport_errors_are_retryable(self, mock_post, task, error):
        mock_post.side_effect = error

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert isinstance(outcome, RetryableFailure)
        assert outcome.http_status is None

    def test_other_request_errors_are_fatal(self, mock_post, task):
        mock_post.side_effect = requests.exceptions.InvalidURL("bad url")

        outcome = AutomationClient(endpoint_url=ENDPOINT).execute(task, 10)

        assert isinstance(outcome, FatalFailure)

    def test_missing_endpoint(self, mock_post, task):
        with pytest.raises(ConfigurationError) as exc_info:
            AutomationClient(endpoint_url="").execute(task, 10)

        assert exc_info.value.config_name == "AUTOMATION_URL"
        mock_post.assert_not_called()

    def test_close(self):
        client = AutomationClient(endpoint_url=ENDPOINT)
        session = client.session

        with patch.object(session, "close") as mock_close:
            client.close()

        mock_close.assert_called_once()
        assert client.session is not session
