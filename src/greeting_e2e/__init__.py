"""End-to-end scenario runner for the greeting pipeline."""

from .config import RunnerConfig, load_config
from .errors import (
    ApiError,
    ConfigError,
    E2EError,
    GenerationError,
    SubmissionError,
    TransientPollError,
    VerificationTimeout,
)
from .models import RunOutcome, RunState
from .runner import ScenarioRunner, execute

__all__ = [
    "ApiError",
    "ConfigError",
    "E2EError",
    "GenerationError",
    "RunOutcome",
    "RunState",
    "RunnerConfig",
    "ScenarioRunner",
    "SubmissionError",
    "TransientPollError",
    "VerificationTimeout",
    "execute",
    "load_config",
]
