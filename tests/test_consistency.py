# tests/test_consistency.py

import json

from conftest import FakeTextGenerator
from reelforge.config import DEFAULT_VISUAL_STYLE
from reelforge.consistency import ConsistencyProfile, build_consistency
from reelforge.structured import StructuredGenerator


def _structured(response):
    text = FakeTextGenerator({"consistency": response})
    return StructuredGenerator(text, default_model="m1", fallback_model=None, sleep=lambda s: None), text


def test_extracts_characters_settings_and_style():
    structured, _ = _structured(json.dumps({
        "characters": ["Maya: a woman in her thirties with curly hair", "an elderly man", "a child", "a dog"],
        "settings": [{"description": "a rainy city street"}, "a neon diner", 42],
        "style": "teal and orange palette, moody neon lighting, handheld close-ups",
    }))

    profile = build_consistency(structured, "Maya walks through the rain to the diner.")

    assert profile.characters == ["a woman in her thirties with curly hair", "an elderly man", "a child"]
    assert profile.settings == ["a rainy city street", "a neon diner"]
    assert profile.style.startswith("teal and orange palette")


def test_falls_back_to_default_style_on_failure():
    structured, text = _structured(RuntimeError("model down"))

    profile = build_consistency(structured, "Some narration.")

    assert profile == ConsistencyProfile()
    assert profile.style == DEFAULT_VISUAL_STYLE
    assert len(text.calls) == 3


def test_empty_narration_skips_the_model_call():
    structured, text = _structured("{}")

    assert build_consistency(structured, "   ") == ConsistencyProfile()
    assert text.calls == []


def test_blank_style_is_replaced_with_default():
    structured, _ = _structured(json.dumps({"characters": [], "settings": [], "style": ""}))

    assert build_consistency(structured, "Narration.").style == DEFAULT_VISUAL_STYLE


def test_prompt_block_lists_only_known_details():
    block = ConsistencyProfile(characters=["a barista in a green apron"], style="soft pastel palette").as_prompt_block()

    assert "Characters: a barista in a green apron" in block
    assert "Settings" not in block
    assert block.endswith("Visual style: soft pastel palette")
