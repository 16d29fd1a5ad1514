"""Classify pronunciation attempts, award XP and track session completion.

Classification of one attempt:
  - correct:            isCorrect and accuracy >= 85
  - close:              70 <= accuracy < 85
  - needs improvement:  anything else
  - unattempted:        no attempt recorded for the word

Modes:
  - training: free navigation, unlimited retries, never any XP.
  - test:     forward-only; a word needs one attempt before advancing.
              Each word earns XP once, the first time it is correct.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from speakdrill.config import settings
from speakdrill.errors import NavigationError
from speakdrill.services.progress import AttemptResult, SessionProgress
from speakdrill.services.words import WordList

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    CORRECT = "correct"
    CLOSE = "close"
    NEEDS_IMPROVEMENT = "needs_improvement"
    UNATTEMPTED = "unattempted"


class PracticeMode(str, Enum):
    TRAINING = "training"
    TEST = "test"


DEFAULT_FEEDBACK = {
    Classification.CORRECT: "Great pronunciation!",
    Classification.CLOSE: "Almost there! Listen to the word once more and try again.",
    Classification.NEEDS_IMPROVEMENT: "Keep practicing. Listen to the word and try again.",
}


def is_qualifying(is_correct: bool, accuracy_score: float) -> bool:
    return bool(is_correct) and accuracy_score >= settings.correct_threshold


def classify(result: Optional[AttemptResult]) -> Classification:
    if result is None:
        return Classification.UNATTEMPTED
    if is_qualifying(result.is_correct, result.accuracy_score):
        return Classification.CORRECT
    if settings.close_threshold <= result.accuracy_score < settings.correct_threshold:
        return Classification.CLOSE
    return Classification.NEEDS_IMPROVEMENT


@dataclass(frozen=True)
class RecordOutcome:
    result: AttemptResult
    classification: Classification
    xp_gained: int = 0


@dataclass(frozen=True)
class SessionReport:
    total_words: int
    correct: int
    close: int
    needs_improvement: int
    unattempted: int
    total_attempts: int
    xp_total: int
    complete: bool

    @property
    def accuracy_pct(self) -> float:
        if self.total_words == 0:
            return 0.0
        return round(self.correct / self.total_words * 100, 1)


class ScoringEngine:
    """The only writer of a session's SessionProgress."""

    def __init__(
        self,
        word_list: WordList,
        mode: PracticeMode,
        progress: SessionProgress,
        *,
        force_all_correct: bool = False,
        xp_per_word: int = settings.xp_per_word,
    ):
        self.word_list = word_list
        self.mode = mode
        self.progress = progress
        self.force_all_correct = force_all_correct
        self.xp_per_word = xp_per_word

    # ---- Queries ----

    @property
    def current_index(self) -> int:
        return self.progress.current_index

    @property
    def xp_total(self) -> int:
        return self.xp_per_word * len(self.progress.xp_awarded_indices)

    @property
    def requires_all_correct(self) -> bool:
        return self.mode == PracticeMode.TRAINING or self.force_all_correct

    def result_for(self, index: int) -> Optional[AttemptResult]:
        return self.progress.results_by_index.get(index)

    def classification(self, index: int) -> Classification:
        return classify(self.result_for(index))

    def is_complete(self) -> bool:
        if len(self.word_list) == 0:
            return False
        indices = range(len(self.word_list))
        if self.requires_all_correct:
            return all(self.classification(i) == Classification.CORRECT for i in indices)
        return all(i in self.progress.results_by_index for i in indices)

    def failed_indices(self) -> list[int]:
        return [
            i for i in range(len(self.word_list))
            if self.classification(i) != Classification.CORRECT
        ]

    def redo_word_list(self) -> WordList:
        """The not-yet-correct words, in their original relative order."""
        return self.word_list.subset(self.failed_indices())

    def report(self) -> SessionReport:
        counts = {c: 0 for c in Classification}
        for i in range(len(self.word_list)):
            counts[self.classification(i)] += 1
        return SessionReport(
            total_words=len(self.word_list),
            correct=counts[Classification.CORRECT],
            close=counts[Classification.CLOSE],
            needs_improvement=counts[Classification.NEEDS_IMPROVEMENT],
            unattempted=counts[Classification.UNATTEMPTED],
            total_attempts=self.progress.total_attempts,
            xp_total=self.xp_total,
            complete=self.is_complete(),
        )

    # ---- Mutations ----

    def record(
        self,
        word_index: int,
        is_correct: bool,
        accuracy_score: float,
        feedback_text: str = "",
        transcript: str = "",
    ) -> RecordOutcome:
        """Store the finalized attempt for ``word_index`` and award XP if due."""
        if not 0 <= word_index < len(self.word_list):
            raise NavigationError(f"word index {word_index} out of range")

        result = AttemptResult(
            word_index=word_index,
            is_correct=is_correct,
            accuracy_score=accuracy_score,
            feedback_text=feedback_text,
            transcript=transcript,
        )
        classification = classify(result)
        if not result.feedback_text:
            result = dataclasses.replace(result, feedback_text=DEFAULT_FEEDBACK[classification])

        progress = self.progress
        progress.total_attempts += 1
        awarded_before = word_index in progress.xp_awarded_indices

        if awarded_before and classification != Classification.CORRECT:
            # A word that already earned XP keeps its qualifying result.
            logger.info(
                "Word %d re-attempt scored %s; keeping earlier correct result",
                word_index, classification.value,
            )
            return RecordOutcome(
                result=dataclasses.replace(result, xp_awarded=True),
                classification=classification,
            )

        xp_gained = 0
        if (
            self.mode == PracticeMode.TEST
            and classification == Classification.CORRECT
            and not awarded_before
        ):
            progress.xp_awarded_indices.add(word_index)
            xp_gained = self.xp_per_word
            logger.info("Word %d correct: +%d XP (total %d)", word_index, xp_gained, self.xp_total)

        result = dataclasses.replace(
            result, xp_awarded=word_index in progress.xp_awarded_indices
        )
        progress.results_by_index[word_index] = result
        return RecordOutcome(result=result, classification=classification, xp_gained=xp_gained)

    def mark_sound_played(self, index: int) -> bool:
        """True the first time the success sound is due for ``index``."""
        if index in self.progress.sound_played_indices:
            return False
        self.progress.sound_played_indices.add(index)
        return True

    def can_advance(self) -> bool:
        if self.current_index >= len(self.word_list) - 1:
            return False
        if self.mode == PracticeMode.TEST:
            return self.current_index in self.progress.results_by_index
        return True

    def advance(self) -> int:
        if self.mode == PracticeMode.TEST and self.current_index not in self.progress.results_by_index:
            raise NavigationError(f"word {self.current_index} needs an attempt before moving on")
        if self.current_index >= len(self.word_list) - 1:
            raise NavigationError("already at the last word")
        self.progress.current_index += 1
        return self.progress.current_index

    def go_to(self, index: int) -> int:
        if not 0 <= index < len(self.word_list):
            raise NavigationError(f"word index {index} out of range")
        if self.mode == PracticeMode.TEST and index != self.current_index:
            raise NavigationError("test mode only moves forward one word at a time")
        self.progress.current_index = index
        return index
