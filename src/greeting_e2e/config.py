"""Runner configuration.

Values are layered: defaults, then an optional TOML file, then environment
variables (a ``.env`` file is loaded first without overriding the real
environment), then explicit overrides from the command line.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigError
from .models import GeneratedMessage

logger = logging.getLogger(__name__)

ENV_PREFIX = "GREETING_E2E_"
GENERATORS = ("local", "ollama")
MAX_LOG_PAGE_LIMIT = 1000

DEFAULT_GREETING = GeneratedMessage(
    to="Greeting recipient",
    sender="Greeting sender",
    heading="Greeting heading",
    message="Greeting main message",
)


@dataclass(frozen=True)
class RunnerConfig:
    receiver_url: str = "http://localhost:8080"
    api_url: str = "http://localhost:8080"
    poll_interval_seconds: float = 1.0
    poll_timeout_seconds: float = 30.0
    request_timeout_seconds: float = 5.0
    num_iterations: int = 1
    log_page_limit: int = 100
    generator: str = "local"
    greeting: GeneratedMessage = field(default=DEFAULT_GREETING)
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "tinyllama"

    def validate(self) -> RunnerConfig:
        for name in ("receiver_url", "api_url", "ollama_url"):
            _validate_url(name, getattr(self, name))
        _validate(self.poll_interval_seconds > 0, f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}")
        _validate(self.poll_timeout_seconds > 0, f"poll_timeout_seconds must be > 0, got {self.poll_timeout_seconds}")
        _validate(
            self.poll_interval_seconds <= self.poll_timeout_seconds,
            "poll_interval_seconds must not exceed poll_timeout_seconds",
        )
        _validate(
            self.request_timeout_seconds > 0,
            f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}",
        )
        _validate(self.num_iterations >= 1, f"num_iterations must be >= 1, got {self.num_iterations}")
        _validate(
            1 <= self.log_page_limit <= MAX_LOG_PAGE_LIMIT,
            f"log_page_limit must be between 1 and {MAX_LOG_PAGE_LIMIT}, got {self.log_page_limit}",
        )
        _validate(self.generator in GENERATORS, f"generator must be one of {', '.join(GENERATORS)}, got {self.generator!r}")
        for name in ("to", "sender", "heading", "message"):
            _validate(bool(getattr(self.greeting, name).strip()), f"greeting {name} must not be empty")
        return self


# Scalar option -> type used to coerce raw string or TOML values.
_FIELD_TYPES: dict[str, type] = {
    "receiver_url": str,
    "api_url": str,
    "poll_interval_seconds": float,
    "poll_timeout_seconds": float,
    "request_timeout_seconds": float,
    "num_iterations": int,
    "log_page_limit": int,
    "generator": str,
    "ollama_url": str,
    "ollama_model": str,
}

_GREETING_ENV = {
    "to": "TO",
    "sender": "FROM",
    "heading": "HEADING",
    "message": "MESSAGE",
}


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(f"Invalid configuration: {message}")


def _validate_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    _validate(
        parsed.scheme in ("http", "https") and bool(parsed.netloc),
        f"{name} must be an absolute http(s) URL, got {value!r}",
    )


def _coerce(name: str, value: Any) -> Any:
    expected = _FIELD_TYPES[name]
    if isinstance(value, bool) or (expected is str and not isinstance(value, str)):
        raise ConfigError(f"Invalid {name}: expected {expected.__name__}, got {value!r}")
    try:
        coerced = expected(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected {expected.__name__}, got {value!r}") from exc
    if expected is int and isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"Invalid {name}: expected an integer, got {value!r}")
    if expected is str:
        return coerced.rstrip("/") if name.endswith("_url") else coerced
    return coerced


def _apply(config: RunnerConfig, values: Mapping[str, Any], source: str) -> RunnerConfig:
    changes: dict[str, Any] = {}
    greeting = dict(dataclasses.asdict(config.greeting))
    for key, value in values.items():
        if value is None:
            continue
        if key == "greeting":
            if not isinstance(value, Mapping):
                raise ConfigError(f"Invalid greeting in {source}: expected a table")
            for part, text in value.items():
                part = "sender" if part == "from" else part
                if part not in greeting:
                    raise ConfigError(f"Unknown greeting field {part!r} in {source}")
                greeting[part] = str(text)
            continue
        if key not in _FIELD_TYPES:
            raise ConfigError(f"Unknown option {key!r} in {source}")
        changes[key] = _coerce(key, value)
    changes["greeting"] = GeneratedMessage(**greeting)
    return dataclasses.replace(config, **changes)


def read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect recognised ``GREETING_E2E_*`` variables into config values."""
    values: dict[str, Any] = {}
    for name in _FIELD_TYPES:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None and raw.strip():
            values[name] = raw
    greeting = {
        part: environ[ENV_PREFIX + suffix]
        for part, suffix in _GREETING_ENV.items()
        if environ.get(ENV_PREFIX + suffix)
    }
    if greeting:
        values["greeting"] = greeting
    return values


def render_template(config: RunnerConfig | None = None) -> str:
    """Render a TOML config file holding the given (or default) values."""
    config = config or RunnerConfig()
    lines = []
    for name, expected in _FIELD_TYPES.items():
        value = getattr(config, name)
        lines.append(f'{name} = "{value}"' if expected is str else f"{name} = {value}")
    lines.append("")
    lines.append("[greeting]")
    lines.append(f'to = "{config.greeting.to}"')
    lines.append(f'from = "{config.greeting.sender}"')
    lines.append(f'heading = "{config.greeting.heading}"')
    lines.append(f'message = "{config.greeting.message}"')
    return "\n".join(lines) + "\n"


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a TOML config file, writing a default template first if it is missing."""
    if not path.exists():
        logger.info("Config file %s not found; writing a template with default values", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_template(), encoding="utf-8")
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    env_file: str | None = ".env",
) -> RunnerConfig:
    """Build and validate a :class:`RunnerConfig`.

    Args:
        path: Optional TOML config file; created from defaults when missing.
        overrides: Values that win over every other source (CLI flags).
        environ: Environment mapping; defaults to ``os.environ``.
        env_file: ``.env`` file loaded into the environment when ``environ``
            is not given. ``None`` skips it.

    Returns:
        The validated configuration.
    """
    if environ is None:
        if env_file:
            load_dotenv(env_file, override=False)
        environ = os.environ

    config = RunnerConfig()
    if path is not None:
        config = _apply(config, read_config_file(Path(path)), str(path))
    config = _apply(config, read_env(environ), "environment")
    if overrides:
        config = _apply(config, overrides, "command line")
    return config.validate()
