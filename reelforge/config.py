"""
Configuration file for the reelforge short-form video generator.
Contains all global constants, model defaults and prompt engineering templates.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# --- Constants ---
PROJECT_ROOT = os.getcwd()
MEDIA_DIR = os.getenv("MEDIA_DIR", os.path.join(PROJECT_ROOT, "media"))
VOICEOVER_DIR = os.path.join(MEDIA_DIR, "voiceovers")
VIDEO_DIR = os.path.join(MEDIA_DIR, "videos")
MEDIA_BASE_URL = os.getenv("MEDIA_BASE_URL", "")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reelforge.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]

# --- Text generation ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
SCRIPT_MODEL = os.getenv("SCRIPT_MODEL", "gpt-4.1-mini")
SCRIPT_FALLBACK_MODEL = os.getenv("SCRIPT_FALLBACK_MODEL", "gpt-4o-mini")
STRUCTURED_MAX_ATTEMPTS = int(os.getenv("STRUCTURED_MAX_ATTEMPTS", "3"))
STRUCTURED_BACKOFF_SECONDS = float(os.getenv("STRUCTURED_BACKOFF_SECONDS", "1.2"))
TEXT_TIMEOUT_SECONDS = int(os.getenv("TEXT_TIMEOUT_SECONDS", "120"))

# --- Clip generation ---
REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
REPLICATE_BASE_URL = "https://api.replicate.com/v1"
VIDEO_MODEL = os.getenv("VIDEO_MODEL", "wan-video/wan-2.2-t2v-fast")
CLIP_MIN_SECONDS = 2
CLIP_MAX_SECONDS = 12
CLIP_ASPECT_RATIO = "9:16"
# WAN 2.2 fast only accepts 81..121 frames at 16 fps
WAN_FRAMES_PER_SECOND = 16
WAN_MIN_FRAMES = 81
WAN_MAX_FRAMES = 121
CLIP_TIMEOUT_SECONDS = int(os.getenv("CLIP_TIMEOUT_SECONDS", "600"))

# --- Voice & transcription ---
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_MODEL = "eleven_monolingual_v1"
VOICE_SPEED = float(os.getenv("VOICE_SPEED", "1.0"))
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "whisper-1")

# Persona -> ElevenLabs voice id. Placeholder ids switch synthesis to a silent stub.
VOICE_OPTIONS = {
    "professional": os.getenv("VOICE_ID_PROFESSIONAL", "voice_id_professional"),
    "casual": os.getenv("VOICE_ID_CASUAL", "voice_id_casual"),
    "energetic": os.getenv("VOICE_ID_ENERGETIC", "voice_id_energetic"),
    "calm": os.getenv("VOICE_ID_CALM", "voice_id_calm"),
    "storyteller": os.getenv("VOICE_ID_STORYTELLER", "voice_id_storyteller"),
}
DEFAULT_PERSONA = "professional"

# --- Captions ---
CAPTION_MAX_WORDS = 7
CAPTION_MAX_DURATION = 2.8
CAPTION_MAX_GAP = 0.55
CAPTION_LIMIT = 180

CAPTION_STYLES = {
    "professional": {"color": "#ffffff", "size": "small", "position": "bottom"},
    "casual": {"color": "#ffe066", "size": "small", "position": "bottom"},
    "energetic": {"color": "#ffdd00", "size": "medium", "position": "center"},
    "calm": {"color": "#e0f2f1", "size": "small", "position": "bottom"},
    "storyteller": {"color": "#fff3e0", "size": "small", "position": "bottom"},
}

# --- Composition ---
SHOTSTACK_API_KEY = os.getenv("SHOTSTACK_API_KEY", "")
SHOTSTACK_ENV = os.getenv("SHOTSTACK_ENV", "stage").lower()
SHOTSTACK_POLL_SECONDS = 4
SHOTSTACK_TIMEOUT_SECONDS = 60 * 8
VIDEO_PROCESSOR_URL = os.getenv("VIDEO_PROCESSOR_URL", "")
VIDEO_PROCESSOR_API_KEY = os.getenv("VIDEO_PROCESSOR_API_KEY", "")
LOCAL_FFMPEG_COMPOSITOR = os.getenv("LOCAL_FFMPEG_COMPOSITOR", "0").strip().lower() in {"1", "true", "yes", "on"}

# --- Planning bounds ---
SECTION_MIN_SECONDS = 2
SECTION_MAX_SECONDS = 14
FALLBACK_SECTION_SECONDS = 6
CLIP_PROMPT_MIN_WORDS = 18
CLIP_PROMPT_PADDING = (
    "cinematic vertical 9:16 composition, natural soft lighting, shallow depth of field, "
    "smooth slow camera movement, rich detail, cohesive color palette"
)
DEFAULT_VISUAL_STYLE = (
    "cinematic realism, warm natural palette, soft diffused lighting, "
    "calm atmosphere, smooth handheld camera with gentle push-ins"
)

# --- Prompt Engineering Section ---

STRUCTURED_SYSTEM_PROMPT = """You are a production assistant for short vertical videos (TikTok, Reels, Shorts).
You respond with ONE JSON object and nothing else. No markdown, no prose.
The JSON object must follow schema: {schema_name}
It must contain these top-level keys: {required_keys}
"""

PLAN_PROMPT = """Plan a high retention vertical short (TikTok/Reel) based on the idea: "{idea}".
Constraints:
- 35-55s total
- 5-8 sections
- Each targetSeconds 4-10
Return JSON: {{"sections": [{{"title": str, "objective": str, "targetSeconds": int}}]}}
"""

DRAFT_PROMPT = """Write a rough draft for each section of a vertical short about: "{idea}".
For every section give a first pass of the spoken narration and a rough visual idea.
Return JSON: {{"sections": [{{"id": str, "narration": str, "visual": str}}]}}
Keep the ids exactly as given.
Sections:
{sections}
"""

SCRIPT_PROMPT = """Refine the narration of each section into an engaging spoken script.
Rules:
- Spoken words only. No camera directions, no stage directions, no speaker labels.
- Natural, energetic wording that fits the target seconds (about 2.5 words per second).
Return JSON: {{"sections": [{{"id": str, "script": str}}]}}
Keep the ids exactly as given.
Sections:
{sections}
"""

CONSISTENCY_PROMPT = """Read the narration of a short video and extract what must stay visually consistent across scenes.
Rules:
- Up to 3 recurring characters, described by generic traits only (age range, clothing, hair). Never use personal names.
- Up to 3 recurring settings.
- One visual style summary covering palette, lighting, atmosphere and camera style.
Return JSON: {{"characters": [str], "settings": [str], "style": str}}
Narration:
{narration}
"""

SCENE_PROMPTS_PROMPT = """Write one self-contained visual prompt per scene for an AI text-to-video model.
Each prompt is generated independently, so repeat the consistency details in every prompt.
Content rules:
- No on-screen text, captions, logos or watermarks.
- No real names of people.
- Must include subject, action, environment, camera, lighting, mood and color palette.
- Vertical 9:16 framing. Max 400 characters.
{consistency}
Return JSON: {{"prompts": [{{"id": str, "prompt": str}}]}}
Keep the ids exactly as given.
Scenes:
{scenes}
"""
