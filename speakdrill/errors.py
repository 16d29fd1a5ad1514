"""Exception taxonomy for the pronunciation-practice engine."""

from __future__ import annotations


class SpeakDrillError(Exception):
    """Root of every error raised by this package."""


class TranscodeError(SpeakDrillError):
    """Captured audio could not be decoded or converted to the wire format."""

    def __init__(self, message: str, word_index: int | None = None):
        super().__init__(message)
        self.word_index = word_index


class AssessmentError(SpeakDrillError):
    """The pronunciation assessment call did not yield a usable verdict."""


class AssessmentTimeout(AssessmentError):
    """The bounded wait for an assessment verdict was exceeded."""


class AssessmentServiceError(AssessmentError):
    """The assessment service failed, rejected the request, or sent no verdict."""


class ProgressFingerprintMismatch(SpeakDrillError):
    """Stored progress belongs to a different word list than the active one."""

    def __init__(self, stored: str, expected: str):
        super().__init__(f"stored fingerprint {stored[:12]} != active {expected[:12]}")
        self.stored = stored
        self.expected = expected


class ConcurrentFinalizeAttempt(SpeakDrillError):
    """A second path tried to finalize a recording that is already finalized."""


class RecordingBusy(SpeakDrillError):
    """A recording was requested while another one is still in progress."""


class NavigationError(SpeakDrillError):
    """The requested word pointer move is not allowed in the current mode."""


class CaptureTimeout(SpeakDrillError):
    """The capture device did not start or stop within its bounded wait."""

    def __init__(self, message: str, word_index: int | None = None):
        super().__init__(message)
        self.word_index = word_index
