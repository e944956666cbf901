# tasks.py

from celery import Celery
import logging
import traceback

from reelforge.clients import (
    ElevenLabsVoiceSynthesizer,
    OpenAITextGenerator,
    ReplicateClipGenerator,
    WhisperTranscriber,
)
from reelforge.compositor import compositor_from_config
from reelforge.config import REDIS_URL
from reelforge.database import SessionLocal, init_database
from reelforge.models import JobStatus
from reelforge.pipeline import Orchestrator
from reelforge.store import JobStore, JobStoreError
from reelforge.structured import StructuredGenerator

celery = Celery('reelforge', broker=REDIS_URL, backend=REDIS_URL)
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def build_orchestrator(store: JobStore) -> Orchestrator:
    """Wires the production clients from configuration."""
    return Orchestrator(
        store=store,
        structured=StructuredGenerator(OpenAITextGenerator()),
        clip_generator=ReplicateClipGenerator(),
        voice_synthesizer=ElevenLabsVoiceSynthesizer(),
        transcriber=WhisperTranscriber(),
        compositor=compositor_from_config(),
    )


def supervise(orchestrator: Orchestrator, job_id: str):
    """
    Runs the pipeline for one job. Stage failures are persisted by the
    orchestrator itself; anything that escapes it is persisted here.
    """
    try:
        logging.info(f"📝 Worker received job {job_id}")
        return orchestrator.run(job_id)
    except Exception as e:
        logging.error(f"❌ Worker failed job {job_id}. Error: {e}")
        traceback.print_exc()
        try:
            return orchestrator.store.transition(job_id, JobStatus.ERROR.value, error=str(e) or type(e).__name__)
        except JobStoreError as store_error:
            logging.error(f"❌ Could not record failure for job {job_id}: {store_error}")
            return None


@celery.task
def run_pipeline_task(job_id: str):
    """Background task that drives one job from queued to complete or error."""
    store = JobStore(SessionLocal)
    job = supervise(build_orchestrator(store), job_id)
    return job["status"] if job else None


def main():
    """Starts a worker that consumes pipeline jobs."""
    init_database()
    celery.worker_main(["worker", "--loglevel=INFO"])
