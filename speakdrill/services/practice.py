"""Pronunciation drill over a word list: record, score, persist, resume."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from speakdrill.errors import NavigationError, RecordingBusy
from speakdrill.services.progress import AttemptResult, ProgressTracker, SessionProgress
from speakdrill.services.recording import FinalizeReason, RecordingController
from speakdrill.services.scoring import (
    Classification,
    PracticeMode,
    ScoringEngine,
    SessionReport,
)
from speakdrill.services.words import WordItem, WordList

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptOutcome:
    result: AttemptResult
    classification: Classification
    xp_gained: int
    play_success_sound: bool
    session_complete: bool
    finalize_reason: Optional[FinalizeReason] = None


class PracticeSession:
    def __init__(
        self,
        word_list: WordList,
        mode: PracticeMode,
        tracker: ProgressTracker,
        key: str,
        controller: RecordingController,
        progress: SessionProgress,
        *,
        force_all_correct: bool = False,
    ):
        self.word_list = word_list
        self.mode = mode
        self.tracker = tracker
        self.key = key
        self.controller = controller
        self.force_all_correct = force_all_correct
        self.engine = ScoringEngine(
            word_list, mode, progress, force_all_correct=force_all_correct
        )

    @classmethod
    async def open(
        cls,
        word_list: WordList,
        mode: PracticeMode,
        tracker: ProgressTracker,
        key: str,
        controller: RecordingController,
        *,
        force_all_correct: bool = False,
    ) -> "PracticeSession":
        """Start or resume a drill; stale or foreign progress is discarded."""
        progress = await tracker.load(key, word_list)
        return cls(
            word_list, mode, tracker, key, controller, progress,
            force_all_correct=force_all_correct,
        )

    @property
    def progress(self) -> SessionProgress:
        return self.engine.progress

    @property
    def current_index(self) -> int:
        return self.engine.current_index

    @property
    def current_word(self) -> WordItem:
        return self.word_list[self.engine.current_index]

    @property
    def is_complete(self) -> bool:
        return self.engine.is_complete()

    def report(self) -> SessionReport:
        return self.engine.report()

    # ---- Recording ----

    async def attempt_current(self) -> AttemptOutcome:
        """Record and assess the current word.

        Returns once the recording is finalized, scored and saved. A failed
        definitive assessment or transcode is re-raised with nothing recorded,
        and the word can simply be attempted again.
        """
        index = self.engine.current_index
        recording = await self.controller.start(index, self.word_list[index].front)
        verdict = await recording.result()

        outcome = self.engine.record(
            index,
            verdict.is_correct,
            verdict.accuracy_score,
            verdict.feedback_text,
            verdict.transcript,
        )
        play_sound = (
            outcome.classification == Classification.CORRECT
            and self.engine.mark_sound_played(index)
        )
        await self._save()

        complete = self.engine.is_complete()
        logger.info(
            "Word %d scored %s (%.0f%%)%s",
            index, outcome.classification.value, verdict.accuracy_score,
            "; session complete" if complete else "",
        )
        return AttemptOutcome(
            result=outcome.result,
            classification=outcome.classification,
            xp_gained=outcome.xp_gained,
            play_success_sound=play_sound,
            session_complete=complete,
            finalize_reason=recording.finalize_reason,
        )

    async def stop_recording(self) -> None:
        await self.controller.stop()

    # ---- Navigation ----

    def _ensure_idle(self) -> None:
        if self.controller.active is not None:
            raise RecordingBusy("finish the current recording first")

    async def advance(self) -> int:
        self._ensure_idle()
        index = self.engine.advance()
        await self._save()
        return index

    async def go_to(self, index: int) -> int:
        self._ensure_idle()
        self.engine.go_to(index)
        await self._save()
        return index

    async def restart(self) -> None:
        """Full reset: drop all results, XP markers and the saved snapshot."""
        self._ensure_idle()
        self.engine.progress = SessionProgress.empty(self.word_list)
        await self.tracker.reset(self.key)
        logger.info("Restarted %s", self.key)

    async def redo_failed(self) -> "PracticeSession":
        """A fresh sub-session over the words that are not yet correct."""
        self._ensure_idle()
        words = self.engine.redo_word_list()
        if len(words) == 0:
            raise NavigationError("every word is already correct")

        key = f"{self.key}:redo"
        await self.tracker.reset(key)
        logger.info("Redo session %s with %d of %d words", key, len(words), len(self.word_list))
        return PracticeSession(
            words, self.mode, self.tracker, key, self.controller,
            SessionProgress.empty(words),
            force_all_correct=self.force_all_correct,
        )

    async def _save(self) -> None:
        await self.tracker.save(self.key, self.word_list, self.engine.progress)
