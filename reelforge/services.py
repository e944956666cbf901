"""
Service classes for the reelforge pipeline.
Contains ScriptSanitizer and ClipPromptBuilder, which clean up model text
before it is voiced or sent to the clip generator.
"""

import logging
import re

from reelforge.config import CLIP_PROMPT_MIN_WORDS, CLIP_PROMPT_PADDING

# "Maya: ...", "Old Tom - ...", '"The Baker" ...'
_LEADING_QUOTED = re.compile(r'^\s*["“\'][^"”\']{1,60}["”\']\s*[:,\-–—]?\s*')
_LEADING_NAME_LABEL = re.compile(r"^\s*[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?\s*[:,\-–—]\s+")


def strip_name_label(text: str) -> str:
    """Removes a leading quoted token or capitalised name label."""
    text = _LEADING_QUOTED.sub("", text or "", count=1)
    return _LEADING_NAME_LABEL.sub("", text, count=1).strip()


class ScriptSanitizer:
    """Reduces model-written narration to the words that should be spoken."""

    def __init__(self, raw_script: str):
        self.script = raw_script or ""
        self.fixes_applied = []

    def _strip_markdown(self):
        cleaned = re.sub(r"```\w*|```|[*_#]{1,3}", "", self.script)
        if cleaned != self.script:
            self.fixes_applied.append("Stripped markdown")
        self.script = cleaned

    def _strip_stage_directions(self):
        cleaned = re.sub(r"\[[^\]]*\]|\([^)]*\)", " ", self.script)
        if cleaned != self.script:
            self.fixes_applied.append("Removed stage directions")
        self.script = cleaned

    def _strip_speaker_labels(self):
        # NARRATOR: / Voiceover: / VO: at the start of a line
        cleaned, n = re.subn(r"(?im)^\s*(?:narrator|voice[- ]?over|vo|host|speaker\s*\d*)\s*:\s*", "", self.script)
        if n:
            self.fixes_applied.append("Removed speaker labels")
        self.script = cleaned

    def _normalize_whitespace(self):
        self.script = re.sub(r"\s+", " ", self.script).strip()
        self.script = re.sub(r"\s+([,.!?;:])", r"\1", self.script)

    def run(self) -> str:
        self._strip_markdown()
        self._strip_speaker_labels()
        self._strip_stage_directions()
        self._normalize_whitespace()

        if self.fixes_applied:
            logging.info(f"🔧 SCRIPT FIXES APPLIED: {', '.join(self.fixes_applied)}")

        return self.script


class ClipPromptBuilder:
    """Turns a scene's visual prompt into a standalone clip-generation prompt."""

    def __init__(self, visual_prompt: str, min_words: int = CLIP_PROMPT_MIN_WORDS):
        self.prompt = (visual_prompt or "").strip()
        self.min_words = min_words

    def run(self) -> str:
        prompt = strip_name_label(self.prompt)
        if len(prompt.split()) < self.min_words:
            prompt = f"{prompt.rstrip('. ')}, {CLIP_PROMPT_PADDING}" if prompt else CLIP_PROMPT_PADDING
        return prompt
