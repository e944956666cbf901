"""
Voice persona selection.

A job's idea plus its section titles and objectives are matched against an
ordered table of keyword patterns; the first category that matches wins.
"""

import re
from typing import Iterable, Optional

from reelforge.config import DEFAULT_PERSONA

PERSONA_RULES = (
    (re.compile(r"\b(hype|workout|fitness|gym|sports?|challenge|viral|insane|crazy|hacks?|motivat\w*|energy|extreme)\b", re.I), "energetic"),
    (re.compile(r"\b(meditat\w*|relax\w*|sleep|calm|mindful\w*|yoga|breath\w*|peaceful|asmr|nature)\b", re.I), "calm"),
    (re.compile(r"\b(story|stories|history|legend\w*|myths?|tales?|once upon|journey|folklore)\b", re.I), "storyteller"),
    # investigative topics read best in a measured voice
    (re.compile(r"\b(myster\w*|crime|investigat\w*|secrets?|conspirac\w*|unsolved|true crime)\b", re.I), "calm"),
    (re.compile(r"\b(routine|vlog|day in|morning|coffee|tips|diy|cooking|recipe|lifestyle|my life)\b", re.I), "casual"),
)


def classify_text(text: str) -> Optional[str]:
    for pattern, persona in PERSONA_RULES:
        if pattern.search(text or ""):
            return persona
    return None


def select_persona(idea: str, sections: Iterable[dict] = ()) -> str:
    parts = [idea or ""]
    for section in sections:
        parts.append(section.get("title") or "")
        parts.append(section.get("objective") or "")
    return classify_text(" ".join(parts)) or DEFAULT_PERSONA
