"""
Remote Automation Service Client.

Handles communication with the headless-browser automation service
(Browserless /function style endpoint) that runs the booking script.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from slot_booker.config import settings
from slot_booker.core.exceptions import ConfigurationError
from slot_booker.core.models import (
    AttemptOutcome,
    FatalFailure,
    RetryableFailure,
    Success,
)
from slot_booker.infrastructure.logging import get_logger
from slot_booker.infrastructure.metrics import get_metrics


logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429})

BODY_CHUNK_SIZE = 8192


def is_retryable_status(status_code: int) -> bool:
    """Timeouts, rate limits and server errors are worth retrying."""
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code <= 599


@dataclass(frozen=True)
class AutomationTask:
    """
    Opaque task descriptor sent to the automation service.

    The script behind the task identifier lives in the remote service;
    only the context shape is known here.
    """
    task: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API request payload."""
        return {
            "task": self.task,
            "context": self.context,
        }


class AutomationClient:
    """
    Client for the remote automation service.

    Each call is a single attempt: retries belong to the orchestrator,
    so the session mounts an adapter without transport retries.
    """

    SERVICE_NAME = "automation"

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
    ) -> None:
        """
        Initialize automation client.

        Args:
            endpoint_url: Full service URL (token included), defaults to config.
        """
        self._endpoint_url = endpoint_url if endpoint_url is not None else settings.automation.endpoint_url
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()

            adapter = HTTPAdapter(
                max_retries=0,
                pool_connections=2,
                pool_maxsize=2,
            )

            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

            self._session.headers.update({
                "Content-Type": "application/json",
                "Accept": "application/json",
            })

        return self._session

    def execute(self, task: AutomationTask, timeout: float) -> AttemptOutcome:
        """
        Run one task on the automation service.

        The timeout bounds the whole attempt: it is passed to requests for
        the connect and per-read waits, and the body is streamed against a
        deadline so a slow trickle of bytes cannot outlive it.

        Args:
            task: Task descriptor.
            timeout: Seconds this attempt may take.

        Returns:
            Success with the parsed body for 2xx answers,
            RetryableFailure for 408/429/5xx and transport errors,
            FatalFailure for any other answer.

        Raises:
            ConfigurationError: If no endpoint is configured.
        """
        if not self._endpoint_url:
            raise ConfigurationError("AUTOMATION_URL")

        metrics = get_metrics()
        start = time.monotonic()
        deadline = start + timeout

        try:
            response = self.session.post(
                self._endpoint_url,
                json=task.to_dict(),
                timeout=timeout,
                stream=True,
            )
            text = self._read_body(response, deadline)
        except requests.exceptions.Timeout as e:
            self._record(metrics, "timeout", start)
            logger.warning(
                "Automation call timed out",
                extra={"extra_fields": {"task": task.task, "timeout": timeout}}
            )
            return RetryableFailure(reason=f"Automation timeout after {timeout:.1f}s: {e}")
        except (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
            self._record(metrics, "connection_error", start)
            logger.warning(
                f"Automation connection failed: {e}",
                extra={"extra_fields": {"task": task.task, "error_type": type(e).__name__}}
            )
            return RetryableFailure(reason=f"Automation connection failed: {e}")
        except requests.exceptions.RequestException as e:
            self._record(metrics, "request_error", start)
            logger.error(
                f"Automation request failed: {e}",
                extra={"extra_fields": {"task": task.task, "error_type": type(e).__name__}}
            )
            return FatalFailure(reason=f"Automation request failed: {e}")

        duration_ms = int((time.monotonic() - start) * 1000)
        body = self._parse_body(text)

        if 200 <= response.status_code < 300:
            self._record(metrics, "success", start)
            logger.info(
                "Automation call succeeded",
                extra={"extra_fields": {
                    "task": task.task,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "remote_status": body.get("status") if isinstance(body, dict) else None,
                }}
            )
            return Success(payload=body, http_status=response.status_code)

        reason = f"Automation HTTP {response.status_code}: {self._excerpt(text)}"
        if is_retryable_status(response.status_code):
            self._record(metrics, "retryable_error", start)
            logger.warning(
                f"Automation HTTP error {response.status_code}, retryable",
                extra={"extra_fields": {
                    "task": task.task,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                }}
            )
            return RetryableFailure(reason=reason, http_status=response.status_code)

        self._record(metrics, "fatal_error", start)
        logger.error(
            f"Automation HTTP error {response.status_code}",
            extra={"extra_fields": {
                "task": task.task,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "response_body": self._excerpt(text),
            }}
        )
        return FatalFailure(reason=reason, http_status=response.status_code)

    @staticmethod
    def _read_body(response: requests.Response, deadline: float) -> str:
        """
        Read a streamed body, giving up once the attempt deadline passes.

        Raises:
            requests.exceptions.ReadTimeout: If the deadline passes mid-body.
        """
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise requests.exceptions.ReadTimeout(
                        "Response body not received within the attempt timeout"
                    )
        finally:
            response.close()
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    @staticmethod
    def _parse_body(text: str) -> Any:
        """Parse a JSON body, keeping raw text when it is not JSON."""
        try:
            return json.loads(text)
        except ValueError:
            return {"raw": text}

    @staticmethod
    def _excerpt(text: str) -> str:
        return text[:500] if text else "(empty)"

    def _record(self, metrics, status: str, start: float) -> None:
        metrics.external_requests_total.inc(service=self.SERVICE_NAME, status=status)
        metrics.external_request_duration_seconds.observe(
            time.monotonic() - start,
            service=self.SERVICE_NAME,
        )

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "AutomationClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


# Global client instance
_automation_client: Optional[AutomationClient] = None


def get_automation_client() -> AutomationClient:
    """Get global automation client instance."""
    global _automation_client
    if _automation_client is None:
        _automation_client = AutomationClient()
    return _automation_client
