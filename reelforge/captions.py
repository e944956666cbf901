"""
Caption segmentation.

Word-level timestamps from the transcriber are merged greedily into short,
readable caption spans. A bucket of consecutive words is closed when it is
full, when the next word would stretch it past max_duration, or when the next
word starts after a pause longer than max_gap. A single word longer than
max_duration is kept whole.
"""

from typing import List

from reelforge.config import CAPTION_LIMIT, CAPTION_MAX_DURATION, CAPTION_MAX_GAP, CAPTION_MAX_WORDS


def _emit(bucket: List[dict]) -> dict:
    return {
        "start": bucket[0]["start"],
        "end": bucket[-1]["end"],
        "text": " ".join(w["text"] for w in bucket),
    }


def merge_words(words: List[dict], max_words: int = CAPTION_MAX_WORDS,
                max_duration: float = CAPTION_MAX_DURATION,
                max_gap: float = CAPTION_MAX_GAP) -> List[dict]:
    segments = []
    bucket: List[dict] = []
    for word in words:
        if bucket:
            first, last = bucket[0], bucket[-1]
            if (
                len(bucket) >= max_words
                or word["end"] - first["start"] > max_duration
                or word["start"] - last["end"] > max_gap
            ):
                segments.append(_emit(bucket))
                bucket = []
        bucket.append(word)
    if bucket:
        segments.append(_emit(bucket))
    return segments


def _clean(spans) -> List[dict]:
    cleaned = []
    for span in spans or []:
        text = (span.get("text") or "").strip()
        start, end = float(span["start"]), float(span["end"])
        if text and end > start:
            cleaned.append({"start": start, "end": end, "text": text})
    return cleaned


def build_captions(transcript: dict, limit: int = CAPTION_LIMIT) -> List[dict]:
    """
    Turns a transcription result into caption segments. Word timestamps are
    merged; if the transcriber only returned coarse segments, those pass
    through unmerged.
    """
    words = _clean(transcript.get("words"))
    if words:
        captions = merge_words(sorted(words, key=lambda w: w["start"]))
    else:
        captions = sorted(_clean(transcript.get("segments")), key=lambda s: s["start"])
    return captions[:limit]
