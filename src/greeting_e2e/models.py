"""Data passed between the runner, its clients and the greeting services."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import EXIT_OK


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as RFC 3339 in UTC with a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value).astimezone(timezone.utc)


class RunState(str, enum.Enum):
    NOT_STARTED = "not_started"
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    SUBMISSION_FAILED = "submission_failed"
    FAILED = "failed"


@dataclass(frozen=True)
class GeneratedMessage:
    to: str
    sender: str
    heading: str
    message: str


@dataclass(frozen=True)
class GreetingSubmission:
    """A greeting as sent to the receiver. One per submission, never mutated."""

    to: str
    sender: str
    heading: str
    message: str
    external_reference: str = field(default_factory=lambda: str(uuid.uuid4()))
    created: datetime = field(default_factory=utc_now)

    @classmethod
    def from_generated(cls, generated: GeneratedMessage) -> GreetingSubmission:
        return cls(
            to=generated.to,
            sender=generated.sender,
            heading=generated.heading,
            message=generated.message,
        )

    def to_payload(self) -> dict[str, str]:
        return {
            "externalReference": self.external_reference,
            "to": self.to,
            "from": self.sender,
            "heading": self.heading,
            "message": self.message,
            "created": format_timestamp(self.created),
        }


@dataclass(frozen=True)
class GreetingReceipt:
    message_id: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GreetingReceipt:
        return cls(message_id=str(payload["messageId"]))


@dataclass(frozen=True, order=True)
class GreetingLogEntry:
    id: int
    greeting_id: int
    message_id: str | None
    created: datetime
    external_reference: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GreetingLogEntry:
        return cls(
            id=int(payload["id"]),
            greeting_id=int(payload["greetingId"]),
            message_id=str(payload["messageId"]) if payload.get("messageId") is not None else None,
            created=parse_timestamp(payload["created"]),
            external_reference=payload.get("externalReference"),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "greetingId": self.greeting_id,
            "created": format_timestamp(self.created),
        }
        if self.message_id is not None:
            payload["messageId"] = self.message_id
        if self.external_reference is not None:
            payload["externalReference"] = self.external_reference
        return payload


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a single poll against the greeting API."""

    processed: bool
    entry: GreetingLogEntry | None = None
    error: str | None = None


@dataclass
class TestTask:
    submission: GreetingSubmission
    message_id: str | None = None
    log_entry: GreetingLogEntry | None = None

    # Keep pytest from collecting this as a test class.
    __test__ = False

    @property
    def verified(self) -> bool:
        return self.log_entry is not None


@dataclass(frozen=True)
class RunOutcome:
    passed: bool
    state: RunState
    message: str = ""
    error_kind: str | None = None
    exit_code: int = EXIT_OK
    elapsed_seconds: float = 0.0
    tasks: tuple[TestTask, ...] = ()

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        verified = sum(1 for task in self.tasks if task.verified)
        line = f"{status}: {verified}/{len(self.tasks)} greetings verified in {self.elapsed_seconds:.2f}s"
        if self.message:
            line += f" ({self.message})"
        return line
