# tests/test_structured.py

import json

import pytest

from conftest import FakeTextGenerator
from reelforge.structured import (
    MalformedResponseError,
    StructuredGenerationError,
    StructuredGenerator,
    repair_json,
)


def test_repair_json_strips_markdown_fences():
    """
    Tests that a fenced JSON answer parses cleanly.
    """
    raw = '```json\n{"sections": [{"title": "Hook"}]}\n```'

    assert repair_json(raw) == {"sections": [{"title": "Hook"}]}


def test_repair_json_salvages_object_from_prose():
    raw = 'Sure! Here is your plan:\n{"sections": [1, 2]}\nLet me know if you need more.'

    assert repair_json(raw) == {"sections": [1, 2]}


def test_repair_json_salvages_object_from_raw_api_envelope():
    raw = '{"choices": [{"message": {"content": ""}}], "id": "x"}'

    assert repair_json(raw)["id"] == "x"


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "[1, 2, 3]", "{broken: json"])
def test_repair_json_rejects_unusable_output(raw):
    with pytest.raises(MalformedResponseError):
        repair_json(raw)


def test_valid_response_returns_on_first_attempt():
    text = FakeTextGenerator({"video_plan": json.dumps({"sections": [{"title": "Hook"}]})})
    generator = StructuredGenerator(text, default_model="m1", fallback_model="m2", sleep=lambda s: None)

    data = generator.generate("plan it", "video_plan", ["sections"])

    assert data == {"sections": [{"title": "Hook"}]}
    assert text.calls == [("video_plan", "m1")]


def test_validation_failures_are_retried_with_linear_backoff():
    answers = iter(['{"other": 1}', '{"sections": []}', '{"sections": [{"title": "Hook"}]}'])
    text = FakeTextGenerator({"video_plan": lambda prompt: next(answers)})
    sleeps = []
    generator = StructuredGenerator(text, default_model="m1", fallback_model=None, sleep=sleeps.append)

    data = generator.generate("plan it", "video_plan", ["sections"])

    assert data["sections"][0]["title"] == "Hook"
    assert len(text.calls) == 3
    assert sleeps == [1.2, 2.4]


def test_always_failing_call_stops_after_max_attempts():
    text = FakeTextGenerator({"video_plan": RuntimeError("rate limited")})
    generator = StructuredGenerator(text, default_model="m1", fallback_model=None, sleep=lambda s: None)

    with pytest.raises(StructuredGenerationError) as exc:
        generator.generate("plan it", "video_plan", ["sections"])

    assert len(text.calls) == 3
    assert "rate limited" in str(exc.value)


def test_fallback_model_gets_one_full_pass():
    text = FakeTextGenerator({"video_plan": "not json at all"})
    generator = StructuredGenerator(text, default_model="m1", fallback_model="m2", max_attempts=3, sleep=lambda s: None)

    with pytest.raises(StructuredGenerationError):
        generator.generate("plan it", "video_plan", ["sections"])

    assert [model for _, model in text.calls] == ["m1", "m1", "m1", "m2", "m2", "m2"]


def test_fallback_model_can_rescue_the_call():
    def answer(prompt):
        # first three calls hit the primary model
        return "garbage" if len(text.calls) <= 3 else json.dumps({"prompts": []})

    text = FakeTextGenerator({"scene_prompts": answer})
    generator = StructuredGenerator(text, default_model="m1", fallback_model="m2", sleep=lambda s: None)

    assert generator.generate("prompts", "scene_prompts", ["prompts"]) == {"prompts": []}
    assert text.calls[-1] == ("scene_prompts", "m2")


def test_no_fallback_pass_when_fallback_is_the_requested_model():
    text = FakeTextGenerator({"consistency": RuntimeError("down")})
    generator = StructuredGenerator(text, default_model="m1", fallback_model="m2", sleep=lambda s: None)

    with pytest.raises(StructuredGenerationError):
        generator.generate("narration", "consistency", ["style"], model="m2")

    assert len(text.calls) == 3


def test_missing_required_keys_fail_validation():
    text = FakeTextGenerator({"consistency": json.dumps({"characters": []})})
    generator = StructuredGenerator(text, default_model="m1", fallback_model=None, max_attempts=2, sleep=lambda s: None)

    with pytest.raises(StructuredGenerationError) as exc:
        generator.generate("narration", "consistency", ["characters", "settings", "style"])

    assert "missing keys" in str(exc.value)
