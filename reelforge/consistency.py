"""
Cross-scene consistency.

The clip generator has no memory between scenes, so recurring characters,
settings and the overall look are extracted once from the drafted narration
and repeated in every scene prompt.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from reelforge.config import CONSISTENCY_PROMPT, DEFAULT_VISUAL_STYLE
from reelforge.services import strip_name_label

MAX_CHARACTERS = 3
MAX_SETTINGS = 3


@dataclass
class ConsistencyProfile:
    characters: List[str] = field(default_factory=list)
    settings: List[str] = field(default_factory=list)
    style: str = DEFAULT_VISUAL_STYLE

    def as_prompt_block(self) -> str:
        lines = ["Consistency (apply to every scene):"]
        if self.characters:
            lines.append("- Characters: " + "; ".join(self.characters))
        if self.settings:
            lines.append("- Settings: " + "; ".join(self.settings))
        lines.append(f"- Visual style: {self.style}")
        return "\n".join(lines)


def _descriptors(values, limit: int) -> List[str]:
    if not isinstance(values, list):
        return []
    out = []
    for value in values:
        if isinstance(value, dict):
            value = value.get("description") or value.get("traits") or ""
        if not isinstance(value, str):
            continue
        value = strip_name_label(value)
        if value:
            out.append(value)
        if len(out) == limit:
            break
    return out


def build_consistency(structured, narration: str, model: Optional[str] = None) -> ConsistencyProfile:
    """Never raises: any failure yields the generic default profile."""
    if not (narration or "").strip():
        return ConsistencyProfile()
    try:
        data = structured.generate(
            CONSISTENCY_PROMPT.format(narration=narration),
            "consistency",
            ["characters", "settings", "style"],
            model=model,
        )
    except Exception as e:
        logging.warning(f"⚠️ Consistency extraction failed, using default style: {e}")
        return ConsistencyProfile()

    style = data.get("style")
    if isinstance(style, dict):
        style = ", ".join(str(v) for v in style.values() if v)
    return ConsistencyProfile(
        characters=_descriptors(data.get("characters"), MAX_CHARACTERS),
        settings=_descriptors(data.get("settings"), MAX_SETTINGS),
        style=style.strip() if isinstance(style, str) and style.strip() else DEFAULT_VISUAL_STYLE,
    )
