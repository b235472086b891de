"""HTTP clients for the greeting-receiver and greeting-api services."""

from __future__ import annotations

import logging

import requests

from .errors import ApiError, SubmissionError, TransientPollError
from .models import GreetingLogEntry, GreetingReceipt, GreetingSubmission

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class _ServiceClient:
    def __init__(self, base_url: str, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def close(self) -> None:
        self.session.close()


class GreetingReceiverClient(_ServiceClient):
    """Submits greetings to the receiver's ``POST /greeting`` endpoint."""

    def send(self, submission: GreetingSubmission, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> GreetingReceipt:
        url = self._url("/greeting")
        try:
            response = self.session.post(
                url,
                json=submission.to_payload(),
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise SubmissionError(f"Receiver unreachable at {url}: {exc}") from exc

        if not response.ok:
            logger.error("Receiver rejected greeting %s: %s", submission.external_reference, response.text)
            raise SubmissionError(
                f"Receiver rejected greeting with HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            return GreetingReceipt.from_payload(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise SubmissionError(
                f"Receiver returned an unreadable response: {response.text!r}",
                status_code=response.status_code,
                body=response.text,
            ) from exc


class GreetingApiClient(_ServiceClient):
    """Reads the processed-greeting log exposed by the greeting API."""

    def get_last_log_entry(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> GreetingLogEntry | None:
        url = self._url("/log/last")
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.RequestException as exc:
            raise ApiError(f"Greeting API unreachable at {url}: {exc}") from exc

        if response.status_code == 204:
            return None
        if response.status_code != 200:
            logger.error("Reading last log entry failed: %s", response.text)
            raise ApiError(f"Reading last log entry failed with HTTP {response.status_code}", response.status_code)
        try:
            return GreetingLogEntry.from_payload(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise ApiError(f"Unreadable last log entry: {response.text!r}", response.status_code) from exc

    def get_log_entries(
        self, offset: int, limit: int, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[GreetingLogEntry]:
        """Fetch up to ``limit`` log entries with ``id >= offset``, oldest first.

        Any failure is reported as :class:`TransientPollError` so the poll loop
        can try again on its next interval.
        """
        url = self._url("/log")
        params = {"direction": "forward", "offset": str(offset), "limit": str(limit)}
        try:
            response = self.session.get(url, params=params, timeout=timeout)
        except requests.RequestException as exc:
            raise TransientPollError(f"Greeting API unreachable at {url}: {exc}") from exc

        if not response.ok:
            logger.error("Reading log entries failed: %s", response.text)
            raise TransientPollError(
                f"Reading log entries failed with HTTP {response.status_code}", response.status_code
            )
        try:
            return [GreetingLogEntry.from_payload(item) for item in response.json()]
        except (ValueError, KeyError, TypeError) as exc:
            raise TransientPollError(f"Unreadable log entries: {response.text!r}", response.status_code) from exc
