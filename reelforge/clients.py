"""
Remote model clients: text generation, clip generation, voice synthesis and
transcription. Each client is constructed explicitly and handed to the
orchestrator, so tests can swap any of them for a fake.
"""

import io
import logging
import os
import time
import uuid
import wave
from dataclasses import dataclass
from typing import Optional

import requests

from reelforge.config import (
    CLIP_ASPECT_RATIO,
    CLIP_MAX_SECONDS,
    CLIP_MIN_SECONDS,
    CLIP_TIMEOUT_SECONDS,
    ELEVENLABS_API_KEY,
    ELEVENLABS_MODEL,
    MEDIA_BASE_URL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    REPLICATE_API_TOKEN,
    REPLICATE_BASE_URL,
    SCRIPT_MODEL,
    TEXT_TIMEOUT_SECONDS,
    VIDEO_MODEL,
    VOICE_OPTIONS,
    VOICE_SPEED,
    VOICEOVER_DIR,
    WAN_FRAMES_PER_SECOND,
    WAN_MAX_FRAMES,
    WAN_MIN_FRAMES,
    WHISPER_MODEL,
)


class ModelClientError(Exception):
    """A remote AI/media service call failed."""


@dataclass
class GeneratedClip:
    id: str
    url: str


def _error_detail(response) -> str:
    try:
        return response.text[:500]
    except Exception:
        return "<unreadable body>"


class OpenAITextGenerator:
    """OpenAI-compatible chat completions client."""

    def __init__(self, api_key: str = OPENAI_API_KEY, base_url: str = OPENAI_BASE_URL,
                 timeout: int = TEXT_TIMEOUT_SECONDS, http=requests):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http

    def generate(self, system_prompt: str, user_prompt: str, json_mode: bool = True,
                 model: str = SCRIPT_MODEL) -> str:
        """
        Returns the message content. When the content comes back empty the
        raw response body is returned instead, so callers can still try to
        salvage a JSON object from it.
        """
        if not self.api_key:
            raise ModelClientError("Missing OPENAI_API_KEY")

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = self.http.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ModelClientError(f"Text generation failed ({model}): {e}") from e

        raw = response.text or ""
        try:
            content = response.json()["choices"][0]["message"].get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            content = ""
        return content if content.strip() else raw


class ReplicateClipGenerator:
    """Text-to-video through Replicate predictions, with a small retry loop."""

    min_seconds = CLIP_MIN_SECONDS
    max_seconds = CLIP_MAX_SECONDS

    def __init__(self, api_token: str = REPLICATE_API_TOKEN, default_model: str = VIDEO_MODEL,
                 max_attempts: int = 3, backoff_seconds: float = 2.5, poll_seconds: float = 2.0,
                 timeout: int = CLIP_TIMEOUT_SECONDS, http=requests, sleep=time.sleep, clock=time.monotonic):
        self.api_token = api_token
        self.default_model = default_model
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.poll_seconds = poll_seconds
        self.timeout = timeout
        self.http = http
        self.sleep = sleep
        self.clock = clock

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self.api_token}", "Prefer": "wait"}

    @staticmethod
    def build_input(model: str, prompt: str, duration_seconds: float, aspect_ratio: str) -> dict:
        if "wan-2.2" in model:
            frames = round(duration_seconds * WAN_FRAMES_PER_SECOND)
            frames = max(WAN_MIN_FRAMES, min(WAN_MAX_FRAMES, frames))
            return {
                "prompt": prompt,
                "go_fast": True,
                "num_frames": frames,
                "resolution": "480p",
                "aspect_ratio": aspect_ratio,
                "sample_shift": 12,
                "optimize_prompt": False,
                "frames_per_second": WAN_FRAMES_PER_SECOND,
            }
        return {
            "prompt": prompt,
            "duration": int(round(duration_seconds)),
            "aspect_ratio": aspect_ratio,
        }

    @staticmethod
    def extract_url(output) -> str:
        """Replicate models return a bare url, a list of urls or a dict."""
        if isinstance(output, str) and output:
            return output
        if isinstance(output, list):
            for item in output:
                if isinstance(item, str) and item:
                    return item
        if isinstance(output, dict):
            for key in ("url", "video", "output"):
                if isinstance(output.get(key), str) and output[key]:
                    return output[key]
        raise ModelClientError("Unrecognized replicate output format")

    def _create_prediction(self, model: str, model_input: dict) -> dict:
        if ":" in model:
            url = f"{REPLICATE_BASE_URL}/predictions"
            body = {"version": model.split(":", 1)[1], "input": model_input}
        else:
            url = f"{REPLICATE_BASE_URL}/models/{model}/predictions"
            body = {"input": model_input}
        response = self.http.post(url, json=body, headers=self._headers, timeout=60)
        if response.status_code >= 400:
            raise ModelClientError(f"Replicate rejected prediction ({response.status_code}): {_error_detail(response)}")
        return response.json()

    def _wait_for(self, prediction: dict) -> dict:
        started = self.clock()
        while prediction.get("status") not in ("succeeded", "failed", "canceled"):
            if self.clock() - started > self.timeout:
                raise ModelClientError("Replicate prediction timed out")
            self.sleep(self.poll_seconds)
            poll_url = (prediction.get("urls") or {}).get("get") or f"{REPLICATE_BASE_URL}/predictions/{prediction['id']}"
            response = self.http.get(poll_url, headers=self._headers, timeout=30)
            if response.status_code >= 400:
                continue
            prediction = response.json()
        if prediction["status"] != "succeeded":
            raise ModelClientError(prediction.get("error") or f"Replicate prediction {prediction['status']}")
        return prediction

    def generate(self, prompt: str, duration_seconds: float, aspect_ratio: str = CLIP_ASPECT_RATIO,
                 model_id: Optional[str] = None) -> GeneratedClip:
        if not self.api_token:
            raise ModelClientError("Missing REPLICATE_API_TOKEN")

        model = model_id or self.default_model
        model_input = self.build_input(model, prompt, duration_seconds, aspect_ratio)

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                prediction = self._wait_for(self._create_prediction(model, model_input))
                return GeneratedClip(id=prediction.get("id") or str(uuid.uuid4()),
                                     url=self.extract_url(prediction.get("output")))
            except (ModelClientError, requests.RequestException, ValueError) as e:
                last_error = e
                logging.warning(f"[replicate] video attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    self.sleep(attempt * self.backoff_seconds)
        raise ModelClientError(str(last_error) or "Failed to generate video")


def silent_wav_bytes(seconds: float = 1.5, sample_rate: int = 16000) -> bytes:
    """A minimal silent 16-bit mono PCM WAV."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * max(1, int(sample_rate * seconds)))
    return buffer.getvalue()


class ElevenLabsVoiceSynthesizer:
    """
    Text-to-speech through ElevenLabs. Accepts a persona alias or a raw voice id.
    Without an API key (or with a placeholder voice id) it writes a silent stub
    so the rest of the pipeline can still be exercised.
    """

    def __init__(self, api_key: str = ELEVENLABS_API_KEY, output_dir: str = VOICEOVER_DIR,
                 base_url: str = MEDIA_BASE_URL, http=requests):
        self.api_key = api_key
        self.output_dir = output_dir
        self.base_url = base_url
        self.http = http

    def _save(self, data: bytes, ext: str, prefix: str = "voiceover") -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        filename = f"{prefix}-{uuid.uuid4()}.{ext}"
        path = os.path.join(self.output_dir, filename)
        with open(path, "wb") as f:
            f.write(data)
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/voiceovers/{filename}"
        return path

    def synthesize(self, text: str, voice: str, speed: float = VOICE_SPEED) -> str:
        voice_id = VOICE_OPTIONS.get(voice, voice)
        if not self.api_key or voice_id.startswith("voice_id_"):
            logging.warning("[voiceover] Using stub audio (missing ELEVENLABS_API_KEY or placeholder voice id).")
            return self._save(silent_wav_bytes(1.5), "wav", prefix="stub")

        try:
            response = self.http.post(
                f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}",
                json={
                    "text": text,
                    "model_id": ELEVENLABS_MODEL,
                    "voice_settings": {"stability": 0.5, "similarity_boost": 0.75, "speed": speed},
                },
                headers={"xi-api-key": self.api_key, "Accept": "audio/mpeg"},
                timeout=180,
            )
        except requests.RequestException as e:
            raise ModelClientError(f"Voiceover request failed: {e}") from e
        if response.status_code >= 400:
            logging.error(f"[voiceover] ElevenLabs API error {response.status_code}: {_error_detail(response)}")
            raise ModelClientError("Failed to generate voiceover")
        return self._save(response.content, "mp3")


class WhisperTranscriber:
    """OpenAI Whisper transcription with word-level timestamps."""

    def __init__(self, api_key: str = OPENAI_API_KEY, base_url: str = OPENAI_BASE_URL,
                 model: str = WHISPER_MODEL, http=requests):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.http = http

    def _load(self, audio_ref: str):
        if audio_ref.startswith(("http://", "https://")):
            try:
                response = self.http.get(audio_ref, timeout=120)
                response.raise_for_status()
            except requests.RequestException as e:
                raise ModelClientError(f"Failed to download audio: {e}") from e
            content_type = response.headers.get("content-type", "audio/mpeg")
            return response.content, content_type
        with open(audio_ref, "rb") as f:
            data = f.read()
        return data, "audio/wav" if audio_ref.endswith(".wav") else "audio/mpeg"

    def transcribe(self, audio_ref: str) -> dict:
        if not self.api_key:
            raise ModelClientError("Missing OPENAI_API_KEY")

        audio, content_type = self._load(audio_ref)
        ext = "wav" if "wav" in content_type else "mp3"
        try:
            response = self.http.post(
                f"{self.base_url}/audio/transcriptions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": (f"audio.{ext}", audio, content_type)},
                data=[
                    ("model", self.model),
                    ("response_format", "verbose_json"),
                    ("timestamp_granularities[]", "word"),
                    ("timestamp_granularities[]", "segment"),
                ],
                timeout=300,
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ModelClientError(f"Transcription failed: {e}") from e

        def spans(items, text_key):
            return [
                {"start": float(i["start"]), "end": float(i["end"]), "text": (i.get(text_key) or "").strip()}
                for i in items or []
                if "start" in i and "end" in i
            ]

        return {
            "segments": spans(result.get("segments"), "text"),
            "words": spans(result.get("words"), "word"),
        }
