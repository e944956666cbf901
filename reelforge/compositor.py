"""
Final composition: lay the clips end to end, attach the voiceover and burn in
captions. Rendering is delegated to a remote compositor, with an alternate
compositor and finally the first clip as best-effort fallbacks.
"""

import logging
import os
import time
import uuid
from typing import List, Optional

import ffmpeg
import requests

from reelforge.config import (
    CAPTION_STYLES,
    DEFAULT_PERSONA,
    LOCAL_FFMPEG_COMPOSITOR,
    MEDIA_BASE_URL,
    SHOTSTACK_API_KEY,
    SHOTSTACK_ENV,
    SHOTSTACK_POLL_SECONDS,
    SHOTSTACK_TIMEOUT_SECONDS,
    VIDEO_DIR,
    VIDEO_PROCESSOR_API_KEY,
    VIDEO_PROCESSOR_URL,
)

DEFAULT_CLIP_SECONDS = 5
MIN_CLIP_LENGTH = 1
MAX_CLIP_LENGTH = 15


class CompositionError(Exception):
    """A compositor could not produce the final video."""


def resolve_durations(clip_count: int, durations: Optional[List[float]], captions: Optional[List[dict]]) -> List[float]:
    """
    Per-clip durations: explicit ones when there is one per clip, else an even
    split of the caption time, else a fixed default.
    """
    if durations and len(durations) == clip_count and all(durations):
        return [float(d) for d in durations]
    total = captions[-1]["end"] if captions else 0
    if total and total > 4:
        return [total / clip_count] * clip_count
    return [float(DEFAULT_CLIP_SECONDS)] * clip_count


def build_timeline(clips: List[str], durations: Optional[List[float]] = None, audio_ref: Optional[str] = None,
                   captions: Optional[List[dict]] = None, style_key: Optional[str] = None) -> dict:
    """Builds a Shotstack edit: one video track, an optional caption track and soundtrack."""
    lengths = resolve_durations(len(clips), durations, captions)

    video_clips = []
    cursor = 0.0
    for src, length in zip(clips, lengths):
        length = max(MIN_CLIP_LENGTH, min(MAX_CLIP_LENGTH, length))
        video_clips.append({"asset": {"type": "video", "src": src}, "start": cursor, "length": length, "fit": "cover"})
        cursor += length

    style = CAPTION_STYLES.get(style_key or DEFAULT_PERSONA, CAPTION_STYLES[DEFAULT_PERSONA])
    caption_clips = [
        {
            "asset": {
                "type": "title",
                "text": c["text"],
                "style": "minimal",
                "color": style["color"],
                "size": style["size"],
                "position": style["position"],
            },
            "start": c["start"],
            "length": max(0.5, c["end"] - c["start"]),
            "transition": {"in": "fade", "out": "fade"},
        }
        for c in captions or []
    ]

    # caption track first so it renders above the video
    tracks = [{"clips": caption_clips}] if caption_clips else []
    tracks.append({"clips": video_clips})
    timeline = {"tracks": tracks}
    if audio_ref:
        timeline["soundtrack"] = {"src": audio_ref, "effect": "fadeInFadeOut"}

    return {
        "timeline": timeline,
        "output": {"format": "mp4", "resolution": "1080", "aspectRatio": "9:16"},
    }


class ShotstackCompositor:
    """Render-job compositor: submit, then poll until done, failed or timed out."""

    def __init__(self, api_key: str = SHOTSTACK_API_KEY, env: str = SHOTSTACK_ENV,
                 poll_seconds: float = SHOTSTACK_POLL_SECONDS, timeout: float = SHOTSTACK_TIMEOUT_SECONDS,
                 http=requests, sleep=time.sleep, clock=time.monotonic):
        self.api_key = api_key
        self.base_url = f"https://api.shotstack.io/v1/{env}"
        self.poll_seconds = poll_seconds
        self.timeout = timeout
        self.http = http
        self.sleep = sleep
        self.clock = clock

    def _submit(self, edit: dict) -> str:
        response = self.http.post(f"{self.base_url}/render", json=edit,
                                  headers={"x-api-key": self.api_key}, timeout=60)
        if response.status_code >= 400:
            raise CompositionError(f"Shotstack render request failed: {response.text}")
        data = response.json()
        render_id = data.get("id") or (data.get("response") or {}).get("id")
        if not render_id:
            raise CompositionError("Shotstack missing render id")
        return render_id

    def composite(self, clips, durations=None, audio_ref=None, captions=None, style_key=None) -> str:
        render_id = self._submit(build_timeline(clips, durations, audio_ref, captions, style_key))
        logging.info(f"🎬 Shotstack render {render_id} submitted for {len(clips)} clips")

        started = self.clock()
        while True:
            self.sleep(self.poll_seconds)
            response = self.http.get(f"{self.base_url}/render/{render_id}",
                                     headers={"x-api-key": self.api_key}, timeout=30)
            if response.status_code < 400:
                data = response.json()
                body = data.get("response") or data
                status = body.get("status")
                if status == "done":
                    if not body.get("url"):
                        raise CompositionError("Shotstack render finished without a url")
                    return body["url"]
                if status in ("failed", "error", "cancelled"):
                    raise CompositionError(f"Shotstack render {status}")
            if self.clock() - started > self.timeout:
                raise CompositionError("Shotstack render timeout")


class ProcessorCompositor:
    """Custom video-processor endpoint."""

    def __init__(self, url: str = VIDEO_PROCESSOR_URL, api_key: str = VIDEO_PROCESSOR_API_KEY, http=requests):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.http = http

    def composite(self, clips, durations=None, audio_ref=None, captions=None, style_key=None) -> str:
        response = self.http.post(
            f"{self.url}/process",
            json={
                "clips": clips,
                "durations": resolve_durations(len(clips), durations, captions),
                "audio": audio_ref,
                "captions": captions,
                "captionStyle": CAPTION_STYLES.get(style_key or DEFAULT_PERSONA),
                "outputFormat": "mp4",
                "resolution": "1080x1920",
                "fps": 30,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=600,
        )
        if response.status_code >= 400:
            raise CompositionError(f"Video processor failed: {response.status_code}")
        video_url = response.json().get("videoUrl")
        if not video_url:
            raise CompositionError("Video processor returned no videoUrl")
        return video_url


class FFmpegCompositor:
    """Local stitching with ffmpeg. Captions are not burned in."""

    def __init__(self, output_dir: str = VIDEO_DIR, base_url: str = MEDIA_BASE_URL):
        self.output_dir = output_dir
        self.base_url = base_url

    def composite(self, clips, durations=None, audio_ref=None, captions=None, style_key=None) -> str:
        lengths = resolve_durations(len(clips), durations, captions)
        input_streams = [ffmpeg.input(src, t=length).video for src, length in zip(clips, lengths)]
        stitched_video_node = ffmpeg.concat(*input_streams, v=1, a=0).node

        os.makedirs(self.output_dir, exist_ok=True)
        output_filename = f"story_{uuid.uuid4()}.mp4"
        output_path = os.path.join(self.output_dir, output_filename)

        streams = [stitched_video_node[0]]
        output_args = {"vcodec": "libx264"}
        if audio_ref:
            streams.append(ffmpeg.input(audio_ref).audio)
            output_args.update(acodec="aac", shortest=None)

        try:
            ffmpeg.output(*streams, output_path, **output_args).run(overwrite_output=True, capture_stderr=True)
        except ffmpeg.Error as e:
            error_details = e.stderr.decode("utf8") if e.stderr else "Unknown FFmpeg error"
            raise CompositionError(f"FFmpeg stitching failed: {error_details}") from e

        logging.info(f"Successfully stitched {len(clips)} clips to {output_path}")
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/videos/{output_filename}"
        return output_path


class FallbackCompositor:
    """
    Tries the primary compositor, then the alternate. If neither produces a
    video the first clip is returned unmodified, and that degradation is
    logged separately from real failures.
    """

    def __init__(self, primary=None, alternate=None):
        self.primary = primary
        self.alternate = alternate

    def composite(self, clips, durations=None, audio_ref=None, captions=None, style_key=None) -> str:
        if not clips:
            raise CompositionError("No clips to composite")
        for name, compositor in (("primary", self.primary), ("alternate", self.alternate)):
            if compositor is None:
                continue
            try:
                return compositor.composite(clips, durations, audio_ref, captions, style_key)
            except Exception as e:
                logging.error(f"❌ {name} compositor {type(compositor).__name__} failed: {e}")
        logging.warning("⚠️ DEGRADED OUTPUT: no compositor produced a video, returning the first clip unmodified")
        return clips[0]


def compositor_from_config() -> FallbackCompositor:
    primary = ShotstackCompositor() if SHOTSTACK_API_KEY else None
    if VIDEO_PROCESSOR_URL:
        alternate = ProcessorCompositor()
    elif LOCAL_FFMPEG_COMPOSITOR:
        alternate = FFmpegCompositor()
    else:
        alternate = None
    return FallbackCompositor(primary, alternate)
