import os
import logging
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

from reelforge.config import CORS_ORIGINS, MEDIA_DIR
from reelforge.database import init_database
from reelforge.routers.generation import router as jobs_router

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

app = FastAPI(
    title="reelforge",
    description="Turns a short idea into a finished vertical video by chaining AI generation calls."
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(jobs_router)


# --------------------------------------------------------------------------
# --- API Endpoints ---
# --------------------------------------------------------------------------

@app.get("/")
def read_root():
    return {"status": "🚀 reelforge is running!"}


@app.get("/media/{path:path}")
async def get_media(path: str):
    """
    Serves locally written voiceovers and stitched videos.
    Requests are confined to the media directory.
    """
    full_path = os.path.abspath(os.path.join(MEDIA_DIR, path))
    if not full_path.startswith(os.path.abspath(MEDIA_DIR) + os.sep):
        raise HTTPException(status_code=403, detail="Forbidden: Access to this path is not allowed.")

    if not os.path.exists(full_path):
        raise HTTPException(status_code=404, detail="Media file not found.")

    return FileResponse(full_path, filename=os.path.basename(full_path))


def run():
    """Creates the tables, then serves the API with uvicorn."""
    init_database()
    uvicorn.run(
        "reelforge.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "0") == "1",
        # Exclude generated media from the reload watcher
        reload_excludes=["media/*", "media/voiceovers/*", "media/videos/*"],
    )


if __name__ == "__main__":
    run()
