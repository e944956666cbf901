# tests/conftest.py

import json
import os
import re
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the repository root to the Python path so we can import the package
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from reelforge.clients import GeneratedClip
from reelforge.database import Base
from reelforge.pipeline import Orchestrator
from reelforge.store import JobStore
from reelforge.structured import StructuredGenerator


def section_ids(prompt):
    """Pulls the section ids the pipeline listed in a prompt."""
    return re.findall(r"id: ([\w-]+);", prompt)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return JobStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


class FakeTextGenerator:
    """Answers by schema name; a response may be a string, a callable or an exception."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def generate(self, system_prompt, user_prompt, json_mode=True, model=None):
        schema = re.search(r"schema: (\w+)", system_prompt).group(1)
        self.calls.append((schema, model))
        response = self.responses[schema]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(user_prompt)
        return response


def default_responses(plan_sections=None):
    plan_sections = plan_sections if plan_sections is not None else [
        {"title": "Hook", "objective": "Grab attention with the smell of fresh coffee", "targetSeconds": 5},
        {"title": "Ritual", "objective": "Show the slow pour-over ritual", "targetSeconds": 8},
        {"title": "Payoff", "objective": "First sip by the window at sunrise", "targetSeconds": 6},
    ]
    return {
        "video_plan": json.dumps({"sections": plan_sections}),
        "video_draft": lambda prompt: json.dumps({"sections": [
            {"id": i, "narration": f"draft narration {n}", "visual": f"draft visual {n}"}
            for n, i in enumerate(section_ids(prompt))
        ]}),
        "video_script": lambda prompt: json.dumps({"sections": [
            {"id": i, "script": f"Spoken line number {n}."}
            for n, i in enumerate(section_ids(prompt))
        ]}),
        "consistency": json.dumps({
            "characters": ["a woman in her thirties with a grey knit sweater"],
            "settings": ["a small sunlit apartment kitchen"],
            "style": "warm amber palette, soft window light, slow handheld camera",
        }),
        "scene_prompts": lambda prompt: json.dumps({"prompts": [
            {"id": i, "prompt": f"Close-up of hands pouring coffee, scene {n}, warm window light"}
            for n, i in enumerate(section_ids(prompt))
        ]}),
    }


class FakeClipGenerator:
    min_seconds = 2
    max_seconds = 12

    def __init__(self, fail_indexes=(), on_call=None):
        self.fail_indexes = set(fail_indexes)
        self.on_call = on_call
        self.calls = []

    def generate(self, prompt, duration_seconds, aspect_ratio="9:16", model_id=None):
        index = len(self.calls)
        self.calls.append({"prompt": prompt, "duration": duration_seconds, "aspect_ratio": aspect_ratio, "model": model_id})
        if self.on_call:
            self.on_call(index)
        if index in self.fail_indexes:
            raise RuntimeError(f"clip {index} rejected")
        return GeneratedClip(id=f"pred-{index}", url=f"https://clips.test/{index}.mp4")


class FakeVoiceSynthesizer:
    def __init__(self):
        self.calls = []

    def synthesize(self, text, voice, speed=1.0):
        self.calls.append({"text": text, "voice": voice, "speed": speed})
        return "https://audio.test/voiceover.mp3"


class FakeTranscriber:
    def __init__(self, result=None):
        self.result = result or {
            "segments": [{"start": 0.0, "end": 4.3, "text": "hi there friend"}],
            "words": [
                {"start": 0.0, "end": 0.3, "text": "hi"},
                {"start": 0.3, "end": 0.6, "text": "there"},
                {"start": 4.0, "end": 4.3, "text": "friend"},
            ],
        }
        self.calls = []

    def transcribe(self, audio_ref):
        self.calls.append(audio_ref)
        return self.result


class FakeCompositor:
    def __init__(self):
        self.calls = []

    def composite(self, clips, durations=None, audio_ref=None, captions=None, style_key=None):
        self.calls.append({"clips": clips, "durations": durations, "audio_ref": audio_ref,
                           "captions": captions, "style_key": style_key})
        return "https://videos.test/final.mp4"


@pytest.fixture
def fakes():
    text = FakeTextGenerator(default_responses())
    return {
        "text": text,
        "structured": StructuredGenerator(text, default_model="primary-model", fallback_model=None,
                                          sleep=lambda seconds: None),
        "clips": FakeClipGenerator(),
        "voice": FakeVoiceSynthesizer(),
        "transcriber": FakeTranscriber(),
        "compositor": FakeCompositor(),
    }


@pytest.fixture
def orchestrator(store, fakes):
    return Orchestrator(
        store=store,
        structured=fakes["structured"],
        clip_generator=fakes["clips"],
        voice_synthesizer=fakes["voice"],
        transcriber=fakes["transcriber"],
        compositor=fakes["compositor"],
    )
