from __future__ import annotations

import pytest

from greeting_e2e.config import DEFAULT_GREETING, RunnerConfig, load_config, render_template
from greeting_e2e.errors import ConfigError


def test_defaults_without_any_source() -> None:
    config = load_config(environ={})

    assert config == RunnerConfig()
    assert config.greeting == DEFAULT_GREETING


def test_environment_overrides_defaults() -> None:
    config = load_config(
        environ={
            "GREETING_E2E_RECEIVER_URL": "http://receiver:8080/",
            "GREETING_E2E_API_URL": "http://api:8080",
            "GREETING_E2E_POLL_INTERVAL_SECONDS": "0.5",
            "GREETING_E2E_POLL_TIMEOUT_SECONDS": "10",
            "GREETING_E2E_NUM_ITERATIONS": "3",
            "GREETING_E2E_FROM": "alice",
            "GREETING_E2E_MESSAGE": "hello",
        }
    )

    assert config.receiver_url == "http://receiver:8080"
    assert config.api_url == "http://api:8080"
    assert config.poll_interval_seconds == 0.5
    assert config.poll_timeout_seconds == 10.0
    assert config.num_iterations == 3
    assert config.greeting.sender == "alice"
    assert config.greeting.message == "hello"
    assert config.greeting.to == DEFAULT_GREETING.to


def test_file_then_environment_then_overrides(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text(
        'receiver_url = "http://file-receiver"\n'
        'api_url = "http://file-api"\n'
        "poll_timeout_seconds = 12\n"
        "\n[greeting]\n"
        'from = "carol"\n',
        encoding="utf-8",
    )

    config = load_config(
        path,
        overrides={"receiver_url": "http://cli-receiver", "num_iterations": None},
        environ={"GREETING_E2E_API_URL": "http://env-api"},
    )

    assert config.receiver_url == "http://cli-receiver"
    assert config.api_url == "http://env-api"
    assert config.poll_timeout_seconds == 12.0
    assert config.num_iterations == 1
    assert config.greeting.sender == "carol"


def test_missing_file_is_created_from_defaults(tmp_path) -> None:
    path = tmp_path / "nested" / "e2e.toml"

    config = load_config(path, environ={})

    assert path.read_text(encoding="utf-8") == render_template()
    assert config == RunnerConfig()


def test_unknown_file_option_is_rejected(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text("num_clients = 4\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="num_clients"):
        load_config(path, environ={})


def test_malformed_file_is_rejected(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text("receiver_url = \n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid config file"):
        load_config(path, environ={})


@pytest.mark.parametrize(
    ("environ", "message"),
    [
        ({"GREETING_E2E_RECEIVER_URL": "receiver:8080"}, "receiver_url"),
        ({"GREETING_E2E_API_URL": "ftp://api"}, "api_url"),
        ({"GREETING_E2E_POLL_INTERVAL_SECONDS": "0"}, "poll_interval_seconds"),
        ({"GREETING_E2E_POLL_TIMEOUT_SECONDS": "-1"}, "poll_timeout_seconds"),
        (
            {"GREETING_E2E_POLL_INTERVAL_SECONDS": "5", "GREETING_E2E_POLL_TIMEOUT_SECONDS": "1"},
            "must not exceed",
        ),
        ({"GREETING_E2E_NUM_ITERATIONS": "0"}, "num_iterations"),
        ({"GREETING_E2E_NUM_ITERATIONS": "many"}, "num_iterations"),
        ({"GREETING_E2E_LOG_PAGE_LIMIT": "5000"}, "log_page_limit"),
        ({"GREETING_E2E_GENERATOR": "gpt"}, "generator"),
        ({"GREETING_E2E_REQUEST_TIMEOUT_SECONDS": "0"}, "request_timeout_seconds"),
    ],
)
def test_invalid_values_are_rejected(environ, message) -> None:
    with pytest.raises(ConfigError, match=message):
        load_config(environ=environ)


def test_blank_greeting_field_is_rejected(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text('[greeting]\nmessage = "  "\n', encoding="utf-8")

    with pytest.raises(ConfigError, match="greeting message"):
        load_config(path, environ={})


def test_fractional_integer_option_is_rejected(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text("num_iterations = 2.7\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="num_iterations"):
        load_config(path, environ={})


def test_whole_float_integer_option_is_accepted(tmp_path) -> None:
    path = tmp_path / "e2e.toml"
    path.write_text("log_page_limit = 50.0\n", encoding="utf-8")

    config = load_config(path, environ={})

    assert config.log_page_limit == 50
    assert isinstance(config.log_page_limit, int)
