# models.py

import enum

from sqlalchemy import Column, DateTime, JSON, String, Text
from reelforge.database import Base


class JobStatus(str, enum.Enum):
    """Pipeline stages in order, followed by the terminal states."""

    QUEUED = "queued"
    PLANNING = "planning"
    DRAFTING = "drafting"
    SCRIPTING = "scripting"
    PROMPTING = "prompting"
    GENERATING_CLIPS = "generating_clips"
    VOICEOVER = "voiceover"
    CAPTIONS = "captions"
    STITCHING = "stitching"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {JobStatus.COMPLETE.value, JobStatus.ERROR.value, JobStatus.CANCELLED.value}

# Columns added after the first release; older databases may not have them yet.
OPTIONAL_COLUMNS = ("voice_persona", "script_model", "video_model")


class Job(Base):
    """Job model for tracking one idea-to-video generation request."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True, index=True)
    owner_id = Column(String, nullable=True, index=True)
    idea = Column(Text, nullable=False)
    status = Column(String, default=JobStatus.QUEUED.value, index=True)
    sections = Column(JSON, nullable=False, default=list)  # ordered scenes
    voiceover_ref = Column(String, nullable=True)
    voice_persona = Column(String, nullable=True)
    captions = Column(JSON, nullable=True)
    video_ref = Column(String, nullable=True)
    script_model = Column(String, nullable=True)
    video_model = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
