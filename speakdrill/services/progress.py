"""Per-word attempt results and resumable session progress.

Progress is keyed by learner+activity and stamped with the fingerprint
of the word list it was recorded against. Loading it for a list with a
different fingerprint (reshuffled, regenerated, edited) throws it away,
since index-based results would otherwise land on the wrong words.
Single-word lists never persist anything.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speakdrill.database import async_session
from speakdrill.errors import ProgressFingerprintMismatch
from speakdrill.models import PracticeProgress
from speakdrill.services.words import WordList

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptResult:
    word_index: int
    is_correct: bool
    accuracy_score: float
    feedback_text: str = ""
    transcript: str = ""
    xp_awarded: bool = False


@dataclass
class SessionProgress:
    list_fingerprint: str
    results_by_index: dict[int, AttemptResult] = field(default_factory=dict)
    current_index: int = 0
    sound_played_indices: set[int] = field(default_factory=set)
    xp_awarded_indices: set[int] = field(default_factory=set)
    total_attempts: int = 0

    @classmethod
    def empty(cls, word_list: WordList) -> "SessionProgress":
        return cls(list_fingerprint=word_list.fingerprint)

    def to_dict(self) -> dict[str, Any]:
        return {
            "list_fingerprint": self.list_fingerprint,
            "results_by_index": {
                str(index): asdict(result)
                for index, result in sorted(self.results_by_index.items())
            },
            "current_index": self.current_index,
            "sound_played_indices": sorted(self.sound_played_indices),
            "xp_awarded_indices": sorted(self.xp_awarded_indices),
            "total_attempts": self.total_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionProgress":
        return cls(
            list_fingerprint=data["list_fingerprint"],
            results_by_index={
                int(index): AttemptResult(**result)
                for index, result in data.get("results_by_index", {}).items()
            },
            current_index=int(data.get("current_index", 0)),
            sound_played_indices={int(i) for i in data.get("sound_played_indices", [])},
            xp_awarded_indices={int(i) for i in data.get("xp_awarded_indices", [])},
            total_attempts=int(data.get("total_attempts", 0)),
        )


def progress_key(learner_id: str | int, activity_id: str | int) -> str:
    return f"{learner_id}:{activity_id}"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class ProgressStore(Protocol):
    async def get(self, key: str) -> Optional[SessionProgress]:
        ...

    async def put(self, key: str, progress: SessionProgress) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryProgressStore:
    """Keeps serialized snapshots, so later mutation of a saved object is invisible."""

    def __init__(self):
        self._rows: dict[str, dict[str, Any]] = {}

    async def get(self, key: str) -> Optional[SessionProgress]:
        row = self._rows.get(key)
        return SessionProgress.from_dict(copy.deepcopy(row)) if row is not None else None

    async def put(self, key: str, progress: SessionProgress) -> None:
        self._rows[key] = progress.to_dict()

    async def delete(self, key: str) -> None:
        self._rows.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._rows


class SqlProgressStore:
    """One ``practice_progress`` row per key; each put commits a single upsert."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession] | None = None):
        self._sessionmaker = sessionmaker or async_session

    async def get(self, key: str) -> Optional[SessionProgress]:
        async with self._sessionmaker() as db:
            row = await db.get(PracticeProgress, key)
            if row is None:
                return None
            return SessionProgress.from_dict(json.loads(row.payload_json))

    async def put(self, key: str, progress: SessionProgress) -> None:
        payload = json.dumps(progress.to_dict())
        async with self._sessionmaker() as db:
            async with db.begin():
                row = await db.get(PracticeProgress, key)
                if row is None:
                    db.add(
                        PracticeProgress(
                            key=key,
                            list_fingerprint=progress.list_fingerprint,
                            payload_json=payload,
                        )
                    )
                else:
                    row.list_fingerprint = progress.list_fingerprint
                    row.payload_json = payload

    async def delete(self, key: str) -> None:
        async with self._sessionmaker() as db:
            async with db.begin():
                row = await db.get(PracticeProgress, key)
                if row is not None:
                    await db.delete(row)

    async def keys(self) -> list[str]:
        async with self._sessionmaker() as db:
            result = await db.execute(select(PracticeProgress.key).order_by(PracticeProgress.key))
            return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Fingerprint-checked loading / saving
# ---------------------------------------------------------------------------


def check_fingerprint(progress: SessionProgress, word_list: WordList) -> None:
    if progress.list_fingerprint != word_list.fingerprint:
        raise ProgressFingerprintMismatch(progress.list_fingerprint, word_list.fingerprint)


class ProgressTracker:
    def __init__(self, store: ProgressStore):
        self.store = store

    async def load(self, key: str, word_list: WordList) -> SessionProgress:
        """Stored progress for ``word_list``, or fresh progress if none applies."""
        if len(word_list) <= 1:
            await self.store.delete(key)
            return SessionProgress.empty(word_list)

        stored = await self.store.get(key)
        if stored is None:
            return SessionProgress.empty(word_list)

        try:
            check_fingerprint(stored, word_list)
        except ProgressFingerprintMismatch as exc:
            logger.info("Discarding stored progress for %s: %s", key, exc)
            await self.store.delete(key)
            return SessionProgress.empty(word_list)

        if not 0 <= stored.current_index < len(word_list):
            stored.current_index = 0
        logger.info(
            "Resuming %s at word %d (%d results)",
            key, stored.current_index, len(stored.results_by_index),
        )
        return stored

    async def save(self, key: str, word_list: WordList, progress: SessionProgress) -> None:
        if len(word_list) <= 1:
            return
        check_fingerprint(progress, word_list)
        await self.store.put(key, progress)

    async def reset(self, key: str) -> None:
        await self.store.delete(key)
