# tests/test_compositor.py

import pytest

from reelforge.compositor import (
    CompositionError,
    FallbackCompositor,
    ShotstackCompositor,
    build_timeline,
    resolve_durations,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload or {}
        self.text = text

    def json(self):
        return self.payload


class FakeHttp:
    def __init__(self, post_response, get_responses):
        self.post_response = post_response
        self.get_responses = list(get_responses)
        self.posted = []
        self.polled = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posted.append((url, json))
        return self.post_response

    def get(self, url, headers=None, timeout=None):
        self.polled.append(url)
        return self.get_responses.pop(0)


class Broken:
    def __init__(self):
        self.calls = 0

    def composite(self, *args):
        self.calls += 1
        raise CompositionError("service unavailable")


class Working:
    def composite(self, clips, *args):
        return "https://render.test/out.mp4"


def _video_track(edit):
    return edit["timeline"]["tracks"][-1]["clips"]


def test_clips_are_laid_end_to_end():
    """
    Tests that each clip starts where the previous one ends.
    """
    edit = build_timeline(["a.mp4", "b.mp4", "c.mp4"], [4, 6.5, 5])

    clips = _video_track(edit)
    assert [c["start"] for c in clips] == [0.0, 4.0, 10.5]
    assert [c["length"] for c in clips] == [4, 6.5, 5]
    assert [c["asset"]["src"] for c in clips] == ["a.mp4", "b.mp4", "c.mp4"]
    assert "soundtrack" not in edit["timeline"]
    assert len(edit["timeline"]["tracks"]) == 1
    assert edit["output"]["aspectRatio"] == "9:16"


def test_clip_lengths_are_bounded():
    clips = _video_track(build_timeline(["a.mp4", "b.mp4"], [0.2, 40]))

    assert [c["length"] for c in clips] == [1, 15]


def test_durations_fall_back_to_even_caption_split():
    captions = [{"start": 0.0, "end": 2.0, "text": "a"}, {"start": 2.0, "end": 12.0, "text": "b"}]

    assert resolve_durations(4, None, captions) == [3.0, 3.0, 3.0, 3.0]
    assert resolve_durations(2, [5], captions) == [6.0, 6.0]


def test_durations_fall_back_to_default():
    assert resolve_durations(3, None, None) == [5.0, 5.0, 5.0]
    assert resolve_durations(2, None, [{"start": 0.0, "end": 3.0, "text": "short"}]) == [5.0, 5.0]


def test_audio_and_persona_styled_captions():
    captions = [{"start": 0.0, "end": 0.3, "text": "hi"}, {"start": 1.0, "end": 2.5, "text": "there"}]

    edit = build_timeline(["a.mp4"], [5], "https://audio.test/v.mp3", captions, "energetic")

    assert edit["timeline"]["soundtrack"]["src"] == "https://audio.test/v.mp3"
    caption_clips = edit["timeline"]["tracks"][0]["clips"]
    assert [c["asset"]["text"] for c in caption_clips] == ["hi", "there"]
    assert caption_clips[0]["length"] == 0.5
    assert caption_clips[1]["length"] == 1.5
    assert caption_clips[0]["asset"]["position"] == "center"
    assert caption_clips[0]["asset"]["color"] == "#ffdd00"


def test_unknown_style_key_uses_default_caption_style():
    edit = build_timeline(["a.mp4"], [5], None, [{"start": 0.0, "end": 1.0, "text": "x"}], "whisper")

    assert edit["timeline"]["tracks"][0]["clips"][0]["asset"]["position"] == "bottom"


def test_shotstack_polls_until_done():
    http = FakeHttp(
        FakeResponse(payload={"response": {"id": "render-1"}}),
        [
            FakeResponse(payload={"response": {"status": "rendering"}}),
            FakeResponse(status_code=502),
            FakeResponse(payload={"response": {"status": "done", "url": "https://cdn.test/final.mp4"}}),
        ],
    )
    compositor = ShotstackCompositor(api_key="k", env="stage", http=http, sleep=lambda s: None)

    assert compositor.composite(["a.mp4"], [5]) == "https://cdn.test/final.mp4"
    assert http.posted[0][0] == "https://api.shotstack.io/v1/stage/render"
    assert len(http.polled) == 3


def test_shotstack_failed_render_raises():
    http = FakeHttp(FakeResponse(payload={"id": "render-1"}), [FakeResponse(payload={"status": "failed"})])
    compositor = ShotstackCompositor(api_key="k", http=http, sleep=lambda s: None)

    with pytest.raises(CompositionError):
        compositor.composite(["a.mp4"], [5])


def test_shotstack_done_without_url_degrades_to_first_clip():
    """
    A finished render with no url is a failure, so the chain falls back
    instead of reporting an empty video.
    """
    http = FakeHttp(FakeResponse(payload={"id": "render-1"}), [FakeResponse(payload={"response": {"status": "done"}})])
    shotstack = ShotstackCompositor(api_key="k", http=http, sleep=lambda s: None)

    with pytest.raises(CompositionError, match="without a url"):
        shotstack.composite(["a.mp4"], [5])

    http.get_responses = [FakeResponse(payload={"response": {"status": "done"}})]
    assert FallbackCompositor(shotstack, None).composite(["a.mp4", "b.mp4"], [5, 5]) == "a.mp4"


def test_shotstack_times_out():
    ticks = iter(range(0, 10_000, 100))
    http = FakeHttp(FakeResponse(payload={"id": "render-1"}),
                    [FakeResponse(payload={"status": "queued"})] * 100)
    compositor = ShotstackCompositor(api_key="k", timeout=250, http=http, sleep=lambda s: None,
                                     clock=lambda: next(ticks))

    with pytest.raises(CompositionError, match="timeout"):
        compositor.composite(["a.mp4"], [5])


def test_fallback_uses_alternate_when_primary_fails():
    primary = Broken()

    result = FallbackCompositor(primary, Working()).composite(["a.mp4", "b.mp4"], [5, 5])

    assert result == "https://render.test/out.mp4"
    assert primary.calls == 1


def test_fallback_degrades_to_first_clip():
    result = FallbackCompositor(Broken(), Broken()).composite(["a.mp4", "b.mp4"], [5, 5])

    assert result == "a.mp4"


def test_fallback_without_any_compositor_returns_first_clip():
    assert FallbackCompositor().composite(["only.mp4"]) == "only.mp4"


def test_fallback_with_no_clips_is_an_error():
    with pytest.raises(CompositionError):
        FallbackCompositor(Working()).composite([])
