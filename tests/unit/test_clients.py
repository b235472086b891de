from __future__ import annotations

from datetime import datetime, timezone

import pytest
import responses
from responses import matchers

from greeting_e2e.clients import GreetingApiClient, GreetingReceiverClient
from greeting_e2e.errors import ApiError, SubmissionError, TransientPollError
from greeting_e2e.models import GreetingLogEntry, GreetingReceipt, GreetingSubmission

RECEIVER_URL = "http://receiver.test"
API_URL = "http://api.test"


def _submission() -> GreetingSubmission:
    return GreetingSubmission(
        to="bjarne",
        sender="arne",
        heading="new year",
        message="happy new year",
        external_reference="external reference",
        created=datetime(2026, 1, 2, 11, 44, 14, 877000, tzinfo=timezone.utc),
    )


@responses.activate
def test_send_posts_camel_case_greeting() -> None:
    responses.add(
        responses.POST,
        f"{RECEIVER_URL}/greeting",
        json={"messageId": "1"},
        match=[
            matchers.json_params_matcher(
                {
                    "created": "2026-01-02T11:44:14.877Z",
                    "externalReference": "external reference",
                    "from": "arne",
                    "heading": "new year",
                    "message": "happy new year",
                    "to": "bjarne",
                }
            )
        ],
    )

    receipt = GreetingReceiverClient(RECEIVER_URL + "/").send(_submission())

    assert receipt == GreetingReceipt(message_id="1")
    assert responses.calls[0].request.headers["Content-Type"] == "application/json"


@responses.activate
def test_send_raises_submission_error_on_rejection() -> None:
    responses.add(responses.POST, f"{RECEIVER_URL}/greeting", status=500, body="kafka down")

    with pytest.raises(SubmissionError) as excinfo:
        GreetingReceiverClient(RECEIVER_URL).send(_submission())

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "kafka down"


@responses.activate
def test_send_raises_submission_error_when_unreachable() -> None:
    # No registered response: responses raises ConnectionError.
    with pytest.raises(SubmissionError, match="unreachable"):
        GreetingReceiverClient(RECEIVER_URL).send(_submission())


@responses.activate
def test_send_raises_submission_error_on_unreadable_body() -> None:
    responses.add(responses.POST, f"{RECEIVER_URL}/greeting", status=200, body="ok")

    with pytest.raises(SubmissionError, match="unreadable"):
        GreetingReceiverClient(RECEIVER_URL).send(_submission())


@responses.activate
def test_get_last_log_entry() -> None:
    responses.add(
        responses.GET,
        f"{API_URL}/log/last",
        json={"id": 2, "greetingId": 2, "messageId": "m-2", "created": "2026-01-01T20:56:57.414558Z"},
    )

    entry = GreetingApiClient(API_URL).get_last_log_entry()

    assert entry == GreetingLogEntry(
        id=2,
        greeting_id=2,
        message_id="m-2",
        created=datetime(2026, 1, 1, 20, 56, 57, 414558, tzinfo=timezone.utc),
    )


@responses.activate
def test_get_last_log_entry_returns_none_when_log_is_empty() -> None:
    responses.add(responses.GET, f"{API_URL}/log/last", status=204)

    assert GreetingApiClient(API_URL).get_last_log_entry() is None


@responses.activate
def test_get_last_log_entry_fails_with_http_5xx() -> None:
    responses.add(responses.GET, f"{API_URL}/log/last", status=500)

    with pytest.raises(ApiError) as excinfo:
        GreetingApiClient(API_URL).get_last_log_entry()

    assert excinfo.value.status_code == 500


@responses.activate
def test_get_log_entries_queries_forward_from_offset() -> None:
    responses.add(
        responses.GET,
        f"{API_URL}/log",
        json=[
            {"id": 1, "greetingId": 1, "messageId": "1", "created": "2026-01-01T20:00:00.414558Z"},
            {"id": 2, "greetingId": 2, "messageId": "2", "created": "2026-01-01T21:00:00.414558Z"},
        ],
        match=[matchers.query_param_matcher({"direction": "forward", "offset": "1", "limit": "10"})],
    )

    entries = GreetingApiClient(API_URL).get_log_entries(1, 10)

    assert [entry.message_id for entry in entries] == ["1", "2"]
    assert entries[0] < entries[1]


@responses.activate
def test_get_log_entries_reports_http_errors_as_transient() -> None:
    responses.add(responses.GET, f"{API_URL}/log", status=503, body="busy")

    with pytest.raises(TransientPollError) as excinfo:
        GreetingApiClient(API_URL).get_log_entries(1, 10)

    assert excinfo.value.status_code == 503


@responses.activate
def test_get_log_entries_reports_connection_errors_as_transient() -> None:
    with pytest.raises(TransientPollError):
        GreetingApiClient(API_URL).get_log_entries(1, 10)


@responses.activate
def test_get_log_entries_reports_malformed_entries_as_transient() -> None:
    responses.add(responses.GET, f"{API_URL}/log", json=[{"id": 1}])

    with pytest.raises(TransientPollError, match="Unreadable"):
        GreetingApiClient(API_URL).get_log_entries(1, 10)


@responses.activate
def test_get_log_entries_accepts_entries_without_message_id() -> None:
    responses.add(
        responses.GET,
        f"{API_URL}/log",
        json=[
            {
                "id": 3,
                "greetingId": 3,
                "externalReference": "external reference",
                "created": "2026-01-01T22:00:00.414558Z",
            }
        ],
    )

    (entry,) = GreetingApiClient(API_URL).get_log_entries(3, 10)

    assert entry.message_id is None
    assert entry.external_reference == "external reference"
    assert "messageId" not in entry.to_payload()
