"""
Job orchestration pipeline.

A job moves through Planning -> Drafting -> Scripting -> Prompting ->
GeneratingClips -> Voiceover -> Captions -> Stitching -> Complete. Each stage
marks the job status, does its work, persists the job and hands the fresh
record to the next stage. Any exception ends the run with status=error.

Stages only fill what is missing, so re-running a partially finished job
never regenerates sections that already have their output. Cancellation is
checked at every stage boundary and before every clip.
"""

import logging
import uuid
from typing import Optional

from reelforge.captions import build_captions
from reelforge.config import (
    CLIP_ASPECT_RATIO,
    CLIP_MAX_SECONDS,
    CLIP_MIN_SECONDS,
    DRAFT_PROMPT,
    FALLBACK_SECTION_SECONDS,
    PLAN_PROMPT,
    SCENE_PROMPTS_PROMPT,
    SCRIPT_PROMPT,
    SECTION_MAX_SECONDS,
    SECTION_MIN_SECONDS,
    VOICE_SPEED,
)
from reelforge.consistency import ConsistencyProfile, build_consistency
from reelforge.models import JobStatus, TERMINAL_STATUSES
from reelforge.persona import select_persona
from reelforge.services import ClipPromptBuilder, ScriptSanitizer
from reelforge.store import InvalidTransitionError
from reelforge.structured import StructuredGenerationError


class PipelineError(Exception):
    """A stage is missing something it cannot run without."""


class JobCancelled(Exception):
    """The job was cancelled from outside while the pipeline was running."""


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_sections(job: dict) -> dict:
    """Coerces a missing or malformed sections value to a list of dicts."""
    sections = job.get("sections")
    if not isinstance(sections, list):
        sections = []
    job["sections"] = [s for s in sections if isinstance(s, dict)]
    for section in job["sections"]:
        if not section.get("id"):
            section["id"] = str(uuid.uuid4())
        else:
            section["id"] = str(section["id"])
    return job


def fallback_section(idea: str) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "title": "Intro",
        "objective": idea or "Introduce the topic",
        "target_seconds": FALLBACK_SECTION_SECONDS,
    }


def _target_seconds(item: dict) -> float:
    raw = item.get("targetSeconds", item.get("target_seconds"))
    try:
        seconds = float(raw)
    except (TypeError, ValueError):
        seconds = FALLBACK_SECTION_SECONDS
    return clamp(seconds, SECTION_MIN_SECONDS, SECTION_MAX_SECONDS)


def _describe(sections, *fields) -> str:
    lines = []
    for s in sections:
        parts = [f"id: {s['id']}", f"title: {s.get('title', '')}", f"objective: {s.get('objective', '')}",
                 f"target: {s.get('target_seconds', FALLBACK_SECTION_SECONDS)}s"]
        parts.extend(f"{name}: {s.get(name) or ''}" for name in fields)
        lines.append("- " + "; ".join(parts))
    return "\n".join(lines)


def fallback_visual_prompt(section: dict, profile: ConsistencyProfile) -> str:
    subject = section.get("objective") or section.get("title") or "an everyday scene"
    return f"{subject.rstrip('. ')}. Vertical 9:16 cinematic shot, no on-screen text. {profile.style}"


def create_job(store, idea: str, owner_id: Optional[str] = None, script_model: Optional[str] = None,
               video_model: Optional[str] = None, schedule=None) -> dict:
    """
    Persists a queued job and hands it to the background scheduler. Returns
    immediately; the pipeline runs on its own.
    """
    job = store.insert({
        "id": str(uuid.uuid4()),
        "owner_id": owner_id,
        "idea": idea,
        "script_model": script_model,
        "video_model": video_model,
    })
    if schedule is None:
        from reelforge.tasks import run_pipeline_task
        schedule = run_pipeline_task.delay
    schedule(job["id"])
    logging.info(f"✨ Job {job['id']} queued for idea: '{idea}'")
    return job


class Orchestrator:
    """Drives one job through every stage using injected clients."""

    def __init__(self, store, structured, clip_generator, voice_synthesizer, transcriber, compositor):
        self.store = store
        self.structured = structured
        self.clip_generator = clip_generator
        self.voice_synthesizer = voice_synthesizer
        self.transcriber = transcriber
        self.compositor = compositor

    @property
    def stages(self):
        return [
            self.plan,
            self.draft,
            self.script,
            self.prompt,
            self.generate_clips,
            self.voiceover,
            self.captions,
            self.stitch,
        ]

    def run(self, job_id: str) -> dict:
        job = self.store.get(job_id)
        if job["status"] in TERMINAL_STATUSES:
            logging.warning(f"Job {job_id} is already {job['status']}; a new job is needed to retry")
            return job

        stage_name = "startup"
        try:
            for stage in self.stages:
                stage_name = stage.__name__
                job = stage(normalize_sections(job))
            job = self._enter(job, JobStatus.COMPLETE)
            logging.info(f"✅ Job {job_id} complete. Video at: {job.get('video_ref')}")
            return job
        except JobCancelled:
            logging.info(f"🛑 Job {job_id} was cancelled during {stage_name}; stopping")
            return self.store.get(job_id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logging.error(f"❌ Job {job_id} failed during {stage_name}: {message}")
            try:
                return self.store.transition(job_id, JobStatus.ERROR.value, error=message)
            except InvalidTransitionError:
                return self.store.get(job_id)

    # ------------------------------------------------------------------
    # persistence helpers
    # ------------------------------------------------------------------

    def _enter(self, job: dict, status: JobStatus) -> dict:
        try:
            return normalize_sections(self.store.transition(job["id"], status.value))
        except InvalidTransitionError:
            if self.store.get(job["id"])["status"] == JobStatus.CANCELLED.value:
                raise JobCancelled(job["id"])
            raise

    def _persist(self, job: dict, **fields) -> dict:
        return normalize_sections(self.store.update(job["id"], **fields))

    def _check_cancelled(self, job_id: str) -> None:
        if self.store.get(job_id)["status"] == JobStatus.CANCELLED.value:
            raise JobCancelled(job_id)

    def _match(self, job: dict, stage: str, items, sections) -> dict:
        """Indexes response items by section id; omitted ids are logged, not fatal."""
        found = {}
        for item in items if isinstance(items, list) else []:
            if isinstance(item, dict) and item.get("id") is not None:
                found[str(item["id"])] = item
        missing = [s["id"] for s in sections if s["id"] not in found]
        if missing:
            logging.warning(f"⚠️ [{stage}] job {job['id']}: response omitted {len(missing)} section id(s), "
                            f"using fallbacks for {missing}")
        return found

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------

    def plan(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.PLANNING)
        if job["sections"]:
            logging.info(f"Job {job['id']} already planned ({len(job['sections'])} sections)")
            return job

        try:
            data = self.structured.generate(
                PLAN_PROMPT.format(idea=job["idea"]), "video_plan", ["sections"], model=job.get("script_model")
            )
        except StructuredGenerationError as e:
            logging.warning(f"⚠️ Planning job {job['id']} produced no sections: {e}")
            data = {"sections": []}
        sections = []
        for item in data["sections"]:
            if not isinstance(item, dict):
                continue
            title = str(item.get("title") or "").strip()
            objective = str(item.get("objective") or "").strip()
            if not (title or objective):
                continue
            sections.append({
                "id": str(uuid.uuid4()),
                "title": title or objective[:60],
                "objective": objective or title,
                "target_seconds": _target_seconds(item),
            })

        if not sections:
            logging.warning(f"⚠️ Plan for job {job['id']} had no usable sections; using a single Intro section")
            sections = [fallback_section(job["idea"])]
        logging.info(f"📝 Job {job['id']} planned {len(sections)} sections")
        return self._persist(job, sections=sections)

    def draft(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.DRAFTING)
        sections = job["sections"]
        if not sections:
            logging.warning(f"⚠️ Job {job['id']} reached drafting without sections; using a single Intro section")
            sections = [fallback_section(job["idea"])]

        pending = [s for s in sections if not s.get("draft_narration")]
        if pending:
            data = self.structured.generate(
                DRAFT_PROMPT.format(idea=job["idea"], sections=_describe(pending)),
                "video_draft", ["sections"], model=job.get("script_model"),
            )
            drafts = self._match(job, "draft", data["sections"], pending)
            for section in pending:
                draft = drafts.get(section["id"], {})
                section["draft_narration"] = draft.get("narration") or section.get("objective") or job["idea"]
                section["draft_visual"] = draft.get("visual") or section.get("title") or ""
        return self._persist(job, sections=sections)

    def script(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.SCRIPTING)
        sections = job["sections"]
        pending = [s for s in sections if not s.get("script")]
        if pending:
            data = self.structured.generate(
                SCRIPT_PROMPT.format(sections=_describe(pending, "draft_narration")),
                "video_script", ["sections"], model=job.get("script_model"),
            )
            scripts = self._match(job, "script", data["sections"], pending)
            for section in pending:
                text = ScriptSanitizer(scripts.get(section["id"], {}).get("script")).run()
                if not text:
                    text = ScriptSanitizer(section.get("draft_narration") or section.get("objective") or job["idea"]).run()
                section["script"] = text
        return self._persist(job, sections=sections)

    def prompt(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.PROMPTING)
        sections = job["sections"]
        pending = [s for s in sections if not s.get("visual_prompt")]
        if pending:
            narration = " ".join(s.get("script") or s.get("draft_narration") or "" for s in sections)
            profile = build_consistency(self.structured, narration, model=job.get("script_model"))
            data = self.structured.generate(
                SCENE_PROMPTS_PROMPT.format(
                    consistency=profile.as_prompt_block(),
                    scenes=_describe(pending, "draft_visual", "script"),
                ),
                "scene_prompts", ["prompts"], model=job.get("script_model"),
            )
            prompts = self._match(job, "prompts", data["prompts"], pending)
            for section in pending:
                text = (prompts.get(section["id"], {}).get("prompt") or "").strip()
                section["visual_prompt"] = text or fallback_visual_prompt(section, profile)
        return self._persist(job, sections=sections)

    def generate_clips(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.GENERATING_CLIPS)
        sections = job["sections"]
        low = getattr(self.clip_generator, "min_seconds", CLIP_MIN_SECONDS)
        high = getattr(self.clip_generator, "max_seconds", CLIP_MAX_SECONDS)

        for index, section in enumerate(sections, start=1):
            if section.get("clip_ref"):
                logging.info(f"⏭️ Job {job['id']} section {index}/{len(sections)} already has a clip")
                continue
            self._check_cancelled(job["id"])

            seconds = clamp(_target_seconds(section), low, high)
            prompt = ClipPromptBuilder(
                section.get("visual_prompt") or section.get("objective") or section.get("title")
            ).run()
            try:
                clip = self.clip_generator.generate(prompt, seconds, CLIP_ASPECT_RATIO, job.get("video_model"))
                section["clip_id"] = clip.id
                section["clip_ref"] = clip.url
                section["clip_error"] = None
                logging.info(f"🎬 Job {job['id']} section {index}/{len(sections)} clip ready")
            except Exception as e:
                section["clip_id"] = None
                section["clip_ref"] = None
                section["clip_error"] = str(e) or type(e).__name__
                logging.error(f"❌ Job {job['id']} section {index}/{len(sections)} clip failed: {section['clip_error']}")
            job = self._persist(job, sections=sections)

        return job

    def voiceover(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.VOICEOVER)
        if job.get("voiceover_ref"):
            return job

        # only narrate the scenes that will actually be shown
        narration = " ".join(
            s["script"].strip() for s in job["sections"] if s.get("clip_ref") and (s.get("script") or "").strip()
        )
        if not narration:
            raise PipelineError("Nothing to narrate: no section has both a script and a generated clip")

        persona = select_persona(job["idea"], job["sections"])
        audio_ref = self.voice_synthesizer.synthesize(narration, persona, VOICE_SPEED)
        logging.info(f"🎙️ Job {job['id']} voiceover ready with persona '{persona}'")
        return self._persist(job, voiceover_ref=audio_ref, voice_persona=persona)

    def captions(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.CAPTIONS)
        if not job.get("voiceover_ref"):
            raise PipelineError("Cannot build captions without a voiceover")

        transcript = self.transcriber.transcribe(job["voiceover_ref"])
        captions = build_captions(transcript)
        logging.info(f"💬 Job {job['id']} has {len(captions)} caption segments")
        return self._persist(job, captions=captions)

    def stitch(self, job: dict) -> dict:
        job = self._enter(job, JobStatus.STITCHING)
        ready = [s for s in job["sections"] if s.get("clip_ref")]
        if not ready:
            raise PipelineError("No clips were generated; nothing to stitch")

        low = getattr(self.clip_generator, "min_seconds", CLIP_MIN_SECONDS)
        high = getattr(self.clip_generator, "max_seconds", CLIP_MAX_SECONDS)
        durations = [clamp(_target_seconds(s), low, high) for s in ready]
        video_ref = self.compositor.composite(
            [s["clip_ref"] for s in ready],
            durations,
            job.get("voiceover_ref"),
            job.get("captions") or None,
            job.get("voice_persona"),
        )
        return self._persist(job, video_ref=video_ref)
