"""Saved practice progress: inspect or reset a learner's drill."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from speakdrill.config import settings
from speakdrill.services.progress import SqlProgressStore, progress_key
from speakdrill.services.scoring import Classification, classify

logger = logging.getLogger(__name__)

router = APIRouter()


def get_store() -> SqlProgressStore:
    """FastAPI dependency for the database-backed progress store."""
    return SqlProgressStore()


@router.get("/progress/{learner_id}/{activity_id}")
async def progress_summary(
    learner_id: str,
    activity_id: str,
    store: SqlProgressStore = Depends(get_store),
):
    key = progress_key(learner_id, activity_id)
    progress = await store.get(key)
    if progress is None:
        return JSONResponse({"error": "No saved progress"}, status_code=404)

    results = progress.results_by_index.values()
    correct = sum(1 for r in results if classify(r) == Classification.CORRECT)
    return JSONResponse({
        "key": key,
        "list_fingerprint": progress.list_fingerprint,
        "current_index": progress.current_index,
        "attempted": len(progress.results_by_index),
        "correct": correct,
        "total_attempts": progress.total_attempts,
        "xp_total": settings.xp_per_word * len(progress.xp_awarded_indices),
    })


@router.delete("/progress/{learner_id}/{activity_id}")
async def reset_progress(
    learner_id: str,
    activity_id: str,
    store: SqlProgressStore = Depends(get_store),
):
    """Explicit restart: forget everything saved for this drill."""
    key = progress_key(learner_id, activity_id)
    await store.delete(key)
    logger.info("Progress reset via API for %s", key)
    return JSONResponse({"reset": True, "key": key})
