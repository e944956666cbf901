"""
Structured generation: ask the text generator for a JSON object of a known
shape, repair what can be repaired, retry what can't, and fall back to an
alternate model as a last resort.

This module knows nothing about jobs or sections.
"""

import json
import logging
import re
import time
from typing import Callable, Dict, Iterable, Optional

from reelforge.config import (
    SCRIPT_FALLBACK_MODEL,
    SCRIPT_MODEL,
    STRUCTURED_BACKOFF_SECONDS,
    STRUCTURED_MAX_ATTEMPTS,
    STRUCTURED_SYSTEM_PROMPT,
)

_FENCE = re.compile(r"```(?:json)?\s*|```")
_OBJECT_SPAN = re.compile(r"\{.*\}", re.DOTALL)


class MalformedResponseError(ValueError):
    """The model answered, but not with a usable JSON object."""


class StructuredGenerationError(Exception):
    """Every attempt (and the fallback model, if any) failed."""


def repair_json(raw: str) -> dict:
    """
    Parses a model response into a JSON object.

    Markdown fences are stripped first. If the text still isn't valid JSON,
    the outermost {...} span is salvaged from it. Anything that isn't an
    object raises MalformedResponseError.
    """
    text = _FENCE.sub("", raw or "").strip()
    if not text:
        raise MalformedResponseError("Model returned an empty response")

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _OBJECT_SPAN.search(text)
        if not match:
            raise MalformedResponseError("No JSON object found in model response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Could not salvage JSON from model response: {e.msg}") from e
        logging.warning("🔧 Salvaged a JSON object from free-text model output")

    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _non_empty_list(key: str) -> Callable[[dict], Optional[str]]:
    def check(data: dict) -> Optional[str]:
        value = data.get(key)
        if not isinstance(value, list) or not value:
            return f"'{key}' must be a non-empty array"
        return None
    return check


def _list(key: str) -> Callable[[dict], Optional[str]]:
    def check(data: dict) -> Optional[str]:
        if not isinstance(data.get(key), list):
            return f"'{key}' must be an array"
        return None
    return check


# Extra shape checks per schema, on top of the required keys.
SCHEMA_CHECKS: Dict[str, Callable[[dict], Optional[str]]] = {
    "video_plan": _non_empty_list("sections"),
    "video_draft": _list("sections"),
    "video_script": _list("sections"),
    "scene_prompts": _list("prompts"),
}


def validate(data: dict, schema_name: str, required_keys: Iterable[str]) -> None:
    missing = [key for key in required_keys if key not in data]
    if missing:
        raise MalformedResponseError(f"{schema_name}: missing keys {missing}")
    check = SCHEMA_CHECKS.get(schema_name)
    problem = check(data) if check else None
    if problem:
        raise MalformedResponseError(f"{schema_name}: {problem}")


class StructuredGenerator:
    """Schema-shaped JSON generation with retries, repair and a fallback model."""

    def __init__(self, text_generator, default_model: str = SCRIPT_MODEL,
                 fallback_model: Optional[str] = SCRIPT_FALLBACK_MODEL,
                 max_attempts: int = STRUCTURED_MAX_ATTEMPTS,
                 backoff_seconds: float = STRUCTURED_BACKOFF_SECONDS,
                 sleep=time.sleep):
        self.text_generator = text_generator
        self.default_model = default_model
        self.fallback_model = fallback_model
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def _attempts(self, prompt: str, schema_name: str, required_keys: list, model: str) -> dict:
        system_prompt = STRUCTURED_SYSTEM_PROMPT.format(
            schema_name=schema_name, required_keys=", ".join(required_keys)
        )
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                raw = self.text_generator.generate(system_prompt, prompt, json_mode=True, model=model)
                data = repair_json(raw)
                validate(data, schema_name, required_keys)
                return data
            except Exception as e:
                last_error = e
                logging.warning(f"[{schema_name}] attempt {attempt}/{self.max_attempts} on {model} failed: {e}")
                if attempt < self.max_attempts:
                    self.sleep(attempt * self.backoff_seconds)
        raise StructuredGenerationError(f"{schema_name} failed after {self.max_attempts} attempts on {model}: {last_error}")

    def generate(self, prompt: str, schema_name: str, required_keys: Iterable[str],
                 model: Optional[str] = None) -> dict:
        required_keys = list(required_keys)
        model = model or self.default_model
        try:
            return self._attempts(prompt, schema_name, required_keys, model)
        except StructuredGenerationError as e:
            if not self.fallback_model or self.fallback_model == model:
                raise
            logging.warning(f"[{schema_name}] switching to fallback model {self.fallback_model}: {e}")
        return self._attempts(prompt, schema_name, required_keys, self.fallback_model)
