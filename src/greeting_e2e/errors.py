"""Errors raised by the greeting e2e runner.

Every fatal error carries the process exit code it maps to.
"""

EXIT_OK = 0
EXIT_VERIFICATION_TIMEOUT = 1
EXIT_SUBMISSION_FAILED = 3
EXIT_CONFIG_ERROR = 4
EXIT_API_ERROR = 5
EXIT_GENERATION_FAILED = 6


class E2EError(Exception):
    """Base error for all runner failures."""

    exit_code = 1


class ConfigError(E2EError):
    """Configuration is missing or invalid."""

    exit_code = EXIT_CONFIG_ERROR


class SubmissionError(E2EError):
    """The receiver rejected a greeting or could not be reached."""

    exit_code = EXIT_SUBMISSION_FAILED

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ApiError(E2EError):
    """The greeting API failed outside the poll loop."""

    exit_code = EXIT_API_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientPollError(E2EError):
    """A single poll attempt failed; the poll loop keeps going."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class VerificationTimeout(E2EError):
    """The API did not confirm every greeting before the deadline."""

    exit_code = EXIT_VERIFICATION_TIMEOUT

    def __init__(self, message: str, pending: list[str] | None = None, attempts: int = 0):
        super().__init__(message)
        self.pending = pending or []
        self.attempts = attempts


class GenerationError(E2EError):
    """No greeting message could be generated."""

    exit_code = EXIT_GENERATION_FAILED
