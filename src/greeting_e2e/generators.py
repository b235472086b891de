"""Greeting message generators."""

from __future__ import annotations

import json
import logging
from typing import Protocol

import requests

from .config import RunnerConfig
from .errors import ConfigError, GenerationError
from .models import GeneratedMessage

logger = logging.getLogger(__name__)

OLLAMA_PROMPT = """
Write a JSON object with the following properties:
 {'to': '', 'from': '', 'heading': '', 'message': ''}
The properties have these additional strict constraints:
Every property must have minimum 1 character value.
'from' must be a random name string from minimum 1 and maximum 20 characters,
'to' must be a random name string from minimum 1 and maximum 20 characters,
'heading' must be a random heading string from minimum 1 and maximum 20 characters,
'message' must be a random message string from minimum 1 and maximum 50 characters,
Properties does not repeat.
Single JSON object in the response.
None of the values can contain special characters.
The JSON must be pretty printed.
"""


class MessageGenerator(Protocol):
    def generate(self) -> GeneratedMessage: ...

    def close(self) -> None: ...


class LocalMessageGenerator:
    """Always returns the same configured greeting."""

    def __init__(self, template: GeneratedMessage):
        self.template = template

    def generate(self) -> GeneratedMessage:
        return self.template

    def close(self) -> None:
        pass


def extract_json_object(text: str) -> str:
    """Pull the JSON object out of free-form model output.

    Prefers the block between a line holding only ``{`` and the next line
    holding only ``}``; falls back to the outermost brace span.
    """
    collected: list[str] = []
    inside = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped == "{":
            inside = True
        if inside:
            collected.append(line)
        if inside and stripped in ("}", "},"):
            break
    if collected and collected[-1].strip() in ("}", "},"):
        return "\n".join(collected).rstrip().rstrip(",")

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise GenerationError(f"No JSON object found in generated text: {text!r}")
    return text[start : end + 1]


def parse_generated_message(text: str) -> GeneratedMessage:
    try:
        payload = json.loads(extract_json_object(text))
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Generated text is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise GenerationError("Generated JSON is not an object")

    fields = {}
    for wire, name in (("to", "to"), ("from", "sender"), ("heading", "heading"), ("message", "message")):
        value = payload.get(wire)
        if not isinstance(value, str) or not value.strip():
            raise GenerationError(f"Generated greeting has no usable {wire!r} value")
        fields[name] = value.strip()
    return GeneratedMessage(**fields)


class OllamaMessageGenerator:
    """Asks a local Ollama model for a random greeting."""

    def __init__(
        self,
        url: str = "http://localhost:11434",
        model: str = "tinyllama",
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ):
        self.url = url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self) -> GeneratedMessage:
        try:
            response = self.session.post(
                f"{self.url}/api/generate",
                json={"model": self.model, "prompt": OLLAMA_PROMPT, "stream": False},
                timeout=self.timeout,
            )
            response.raise_for_status()
            text = response.json()["response"]
        except requests.RequestException as exc:
            raise GenerationError(f"Ollama request failed: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise GenerationError(f"Unexpected Ollama response: {exc}") from exc

        logger.debug("Ollama generated: %s", text)
        return parse_generated_message(text)

    def close(self) -> None:
        self.session.close()


def build_generator(config: RunnerConfig) -> MessageGenerator:
    if config.generator == "local":
        return LocalMessageGenerator(config.greeting)
    if config.generator == "ollama":
        return OllamaMessageGenerator(config.ollama_url, config.ollama_model)
    raise ConfigError(f"Unknown generator {config.generator!r}")
