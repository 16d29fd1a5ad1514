"""SpeakDrill pronunciation practice: FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from speakdrill.database import init_db

# --- Configure logging so speakdrill.* loggers are visible alongside uvicorn ---
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:    %(name)s - %(message)s",
    stream=sys.stdout,
    force=True,  # override uvicorn's config
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    await init_db()
    log.info("Progress database ready")
    yield


app = FastAPI(title="SpeakDrill", version="0.1.0", lifespan=lifespan)

# --- Register routers ---
from speakdrill.routes.progress import router as progress_router  # noqa: E402

app.include_router(progress_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
