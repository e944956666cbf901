"""
Router for video job endpoints.
Handles job creation, status polling, listing, cancellation and deletion.
"""

import logging
from fastapi import APIRouter, HTTPException, Depends
from typing import List

from reelforge.database import SessionLocal
from reelforge.pipeline import create_job
from reelforge.schemas import CreateJobRequest, JobResponse, JobSummary, StatusResponse
from reelforge.store import InvalidTransitionError, JobNotFoundError, JobStore
from reelforge.tasks import run_pipeline_task


# Create the router
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_store() -> JobStore:
    return JobStore(SessionLocal)


def get_scheduler():
    return run_pipeline_task.delay


def _snapshot(job: dict) -> dict:
    return {
        "id": job["id"],
        "status": job["status"],
        "sections": job.get("sections") or [],
        "voiceover_ref": job.get("voiceover_ref"),
        "voice_persona": job.get("voice_persona"),
        "captions": job.get("captions") or [],
        "video_ref": job.get("video_ref"),
        "error": job.get("error"),
        "created_at": job.get("created_at"),
        "updated_at": job.get("updated_at"),
    }


@router.post("/", response_model=JobResponse)
async def create_video_job(request: CreateJobRequest, store: JobStore = Depends(get_store),
                           schedule=Depends(get_scheduler)):
    """
    Creates a queued job record, hands it to the background worker,
    and immediately returns the job ID.
    """
    try:
        job = create_job(
            store,
            request.idea.strip(),
            owner_id=request.owner_id,
            script_model=request.script_model,
            video_model=request.video_model,
            schedule=schedule,
        )
    except Exception as e:
        logging.error(f"Failed to start video job: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to start video generation: {e}")
    return {"job_id": job["id"], "status": job["status"]}


@router.get("/{job_id}", response_model=StatusResponse)
async def get_job_status(job_id: str, store: JobStore = Depends(get_store)):
    """Returns the current snapshot of a job for polling."""
    try:
        return _snapshot(store.get(job_id))
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found.")


@router.get("/", response_model=List[JobSummary])
async def list_jobs(owner_id: str, store: JobStore = Depends(get_store)):
    """Lists an owner's jobs, newest first."""
    summaries = []
    for job in store.list_for_owner(owner_id):
        captions = job.get("captions") or []
        summaries.append({
            "id": job["id"],
            "title": (job.get("idea") or "Untitled")[:100],
            "status": job["status"],
            "video_ref": job.get("video_ref"),
            "duration": round(captions[-1].get("end") or 0) if captions else None,
            "has_voiceover": bool(job.get("voiceover_ref")),
            "has_captions": bool(captions),
            "created_at": job.get("created_at"),
        })
    return summaries


@router.post("/{job_id}/cancel", response_model=StatusResponse)
async def cancel_job(job_id: str, store: JobStore = Depends(get_store)):
    """Marks a running job as cancelled. The worker stops at the next stage boundary."""
    try:
        job = store.cancel(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found.")
    except InvalidTransitionError:
        raise HTTPException(status_code=409, detail="Cannot cancel a job that has already finished.")
    logging.info(f"🛑 Job {job_id} cancelled")
    return _snapshot(job)


@router.delete("/{job_id}", status_code=204)
async def delete_job(job_id: str, store: JobStore = Depends(get_store)):
    try:
        store.delete(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found.")
