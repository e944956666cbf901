"""
Pydantic models for data validation in the reelforge API.
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class CreateJobRequest(BaseModel):
    """Request model for starting a new idea-to-video job."""
    idea: str = Field(..., min_length=5)
    owner_id: Optional[str] = None
    script_model: Optional[str] = None
    video_model: Optional[str] = None


class CaptionSegment(BaseModel):
    start: float
    end: float
    text: str


class Section(BaseModel):
    """One planned scene and whatever the pipeline has produced for it so far."""
    id: str
    title: Optional[str] = None
    objective: Optional[str] = None
    target_seconds: Optional[float] = None
    draft_narration: Optional[str] = None
    draft_visual: Optional[str] = None
    script: Optional[str] = None
    visual_prompt: Optional[str] = None
    clip_id: Optional[str] = None
    clip_ref: Optional[str] = None
    clip_error: Optional[str] = None


class JobResponse(BaseModel):
    """Response when submitting a background generation job."""
    job_id: str
    status: str  # always "queued"


class StatusResponse(BaseModel):
    """Read-only snapshot of a job for pollers."""
    id: str
    status: str
    sections: List[Section] = []
    voiceover_ref: Optional[str] = None
    voice_persona: Optional[str] = None
    captions: List[CaptionSegment] = []
    video_ref: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class JobSummary(BaseModel):
    """One row of an owner's job list."""
    id: str
    title: str
    status: str
    video_ref: Optional[str] = None
    duration: Optional[int] = None
    has_voiceover: bool = False
    has_captions: bool = False
    created_at: Optional[datetime] = None
