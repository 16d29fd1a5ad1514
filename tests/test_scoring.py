"""
Tests for the scoring & feedback engine

Tests cover:
- Classification boundaries
- Idempotent XP in test mode, no XP in training mode
- Completion rules per mode, including single-word lists
- Forward-only navigation in test mode
- Redo-failed-words sub-lists and session reports
"""

import pytest

from speakdrill.errors import NavigationError
from speakdrill.services.progress import AttemptResult, SessionProgress
from speakdrill.services.scoring import (
    DEFAULT_FEEDBACK,
    Classification,
    PracticeMode,
    ScoringEngine,
    classify,
)
from speakdrill.services.words import WordList


def engine_for(words, mode=PracticeMode.TEST, **kwargs) -> ScoringEngine:
    return ScoringEngine(words, mode, SessionProgress.empty(words), **kwargs)


def attempt(score, correct=True, index=0):
    return AttemptResult(word_index=index, is_correct=correct, accuracy_score=score)


class TestClassification:
    def test_85_and_correct_is_correct(self):
        assert classify(attempt(85)) == Classification.CORRECT

    def test_84_and_correct_is_close(self):
        assert classify(attempt(84)) == Classification.CLOSE

    def test_70_is_close(self):
        assert classify(attempt(70, correct=False)) == Classification.CLOSE

    def test_69_needs_improvement(self):
        assert classify(attempt(69)) == Classification.NEEDS_IMPROVEMENT

    def test_high_score_without_correct_flag_is_not_correct(self):
        assert classify(attempt(95, correct=False)) == Classification.NEEDS_IMPROVEMENT

    def test_no_attempt_is_unattempted(self):
        assert classify(None) == Classification.UNATTEMPTED


class TestExperiencePoints:
    def test_first_correct_awards_two(self, words):
        engine = engine_for(words)
        outcome = engine.record(0, True, 92)

        assert outcome.xp_gained == 2
        assert outcome.result.xp_awarded is True
        assert engine.xp_total == 2

    def test_repeat_correct_never_reawards(self, words):
        engine = engine_for(words)
        engine.record(0, True, 92)
        again = engine.record(0, True, 99)

        assert again.xp_gained == 0
        assert engine.progress.xp_awarded_indices == {0}
        assert engine.xp_total == 2

    def test_xp_counts_each_word_that_ever_reached_correct(self, words):
        engine = engine_for(words)
        engine.record(0, True, 90)
        engine.record(1, True, 60)
        engine.record(1, True, 88)
        engine.record(0, True, 95)
        engine.record(2, False, 30)

        assert engine.xp_total == 2 * 2

    def test_failed_retry_keeps_earned_result(self, words):
        engine = engine_for(words)
        engine.record(0, True, 90)
        retry = engine.record(0, False, 20)

        assert retry.classification == Classification.NEEDS_IMPROVEMENT
        assert retry.xp_gained == 0
        assert engine.classification(0) == Classification.CORRECT
        assert engine.progress.total_attempts == 2
        for index in engine.progress.xp_awarded_indices:
            assert engine.classification(index) == Classification.CORRECT

    def test_training_mode_never_awards(self, words):
        engine = engine_for(words, PracticeMode.TRAINING)
        outcome = engine.record(0, True, 100)

        assert outcome.xp_gained == 0
        assert outcome.result.xp_awarded is False
        assert engine.xp_total == 0

    def test_training_shows_latest_attempt_only(self, words):
        engine = engine_for(words, PracticeMode.TRAINING)
        engine.record(0, True, 100)
        engine.record(0, True, 75)

        assert engine.classification(0) == Classification.CLOSE


class TestFeedback:
    def test_default_feedback_filled_in(self, words):
        outcome = engine_for(words).record(0, True, 75)
        assert outcome.result.feedback_text == DEFAULT_FEEDBACK[Classification.CLOSE]

    def test_service_feedback_kept(self, words):
        outcome = engine_for(words).record(0, True, 75, feedback_text="Stress the first syllable")
        assert outcome.result.feedback_text == "Stress the first syllable"

    def test_success_sound_once_per_word(self, words):
        engine = engine_for(words)
        assert engine.mark_sound_played(1) is True
        assert engine.mark_sound_played(1) is False


class TestCompletion:
    def test_test_mode_completes_when_all_attempted(self, words):
        engine = engine_for(words)
        engine.record(0, True, 90)
        engine.record(1, False, 10)
        assert not engine.is_complete()
        engine.record(2, True, 72)
        assert engine.is_complete()

    def test_training_mode_needs_every_word_correct(self, words):
        engine = engine_for(words, PracticeMode.TRAINING)
        for i in range(3):
            engine.record(i, True, 90)
        engine.record(2, True, 80)
        assert not engine.is_complete()
        engine.record(2, True, 86)
        assert engine.is_complete()

    def test_forced_completion_in_test_mode(self, words):
        engine = engine_for(words, force_all_correct=True)
        for i in range(3):
            engine.record(i, False, 50)
        assert not engine.is_complete()

    @pytest.mark.parametrize("mode", list(PracticeMode))
    def test_single_word_without_attempt_is_never_complete(self, mode):
        single = WordList.from_pairs([("cat", "katt")])
        engine = engine_for(single, mode)

        assert not engine.is_complete()
        engine.record(0, True, 95)
        assert engine.is_complete()

    def test_empty_list_is_not_complete(self):
        assert not engine_for(WordList([])).is_complete()


class TestNavigation:
    def test_test_mode_blocks_advance_before_attempt(self, words):
        engine = engine_for(words)
        assert not engine.can_advance()
        with pytest.raises(NavigationError):
            engine.advance()

        engine.record(0, False, 12)
        assert engine.can_advance()
        assert engine.advance() == 1

    def test_test_mode_has_no_free_jumps(self, words):
        engine = engine_for(words)
        with pytest.raises(NavigationError):
            engine.go_to(2)

    def test_training_mode_moves_freely(self, words):
        engine = engine_for(words, PracticeMode.TRAINING)
        assert engine.go_to(2) == 2
        assert engine.go_to(0) == 0
        assert engine.advance() == 1

    def test_cannot_advance_past_last_word(self, words):
        engine = engine_for(words, PracticeMode.TRAINING)
        engine.go_to(2)
        assert not engine.can_advance()
        with pytest.raises(NavigationError):
            engine.advance()

    def test_record_out_of_range(self, words):
        with pytest.raises(NavigationError):
            engine_for(words).record(3, True, 90)


class TestRedoAndReport:
    def test_redo_list_keeps_original_order(self, words):
        engine = engine_for(words)
        engine.record(0, True, 90)
        engine.record(1, True, 75)
        engine.record(2, False, 40)

        redo = engine.redo_word_list()
        assert list(redo) == [words[1], words[2]]
        assert engine.failed_indices() == [1, 2]

    def test_unattempted_words_are_redone(self, words):
        engine = engine_for(words)
        engine.record(1, True, 95)
        assert engine.failed_indices() == [0, 2]

    def test_report_counts(self, words):
        engine = engine_for(words)
        engine.record(0, True, 90)
        engine.record(1, True, 75)
        engine.record(1, True, 74)

        report = engine.report()
        assert report.total_words == 3
        assert report.correct == 1
        assert report.close == 1
        assert report.unattempted == 1
        assert report.total_attempts == 3
        assert report.xp_total == 2
        assert report.accuracy_pct == pytest.approx(33.3)
        assert report.complete is False
