"""Recording sessions: capture, continuous assessment and finalization.

One recording runs three timelines at once: the capture device filling
its buffer, a periodic speculative-assessment poll, and a hard timeout.
Whichever of the poll (early success), the timeout or an explicit stop
reaches the finalize latch first produces the session's only verdict;
the others notice the latch at their next checkpoint and do nothing.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from speakdrill.config import settings
from speakdrill.errors import (
    AssessmentServiceError,
    CaptureTimeout,
    ConcurrentFinalizeAttempt,
    RecordingBusy,
)
from speakdrill.services.assessment import AssessmentClient, Verdict, assess_within
from speakdrill.services.capture import AudioCaptureDevice, CaptureLease, ExclusiveDevice
from speakdrill.services.scoring import is_qualifying
from speakdrill.services.timers import TimerHandle, Timers
from speakdrill.services.transcoder import transcode

logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    RESULTED = "resulted"


class FinalizeReason(str, Enum):
    EARLY_SUCCESS = "early_success"
    TIMEOUT = "timeout"
    STOPPED = "stopped"


class FinalizeLatch:
    """Test-and-set flag: the first claim wins, later claims raise."""

    def __init__(self):
        self._lock = threading.Lock()
        self._claimed_by: Optional[FinalizeReason] = None

    @property
    def finalized(self) -> bool:
        return self._claimed_by is not None

    @property
    def claimed_by(self) -> Optional[FinalizeReason]:
        return self._claimed_by

    def claim(self, reason: FinalizeReason) -> None:
        with self._lock:
            if self._claimed_by is not None:
                raise ConcurrentFinalizeAttempt(
                    f"{reason.value} lost to {self._claimed_by.value}"
                )
            self._claimed_by = reason


@dataclass
class RecordingSession:
    word_index: int
    target_word: str
    lease: CaptureLease
    outcome: asyncio.Future
    state: RecordingState = RecordingState.RECORDING
    started_at: float = field(default_factory=time.monotonic)
    poll_handle: Optional[TimerHandle] = None
    timeout_handle: Optional[TimerHandle] = None
    latch: FinalizeLatch = field(default_factory=FinalizeLatch)
    polls: int = 0
    poll_in_flight: bool = False

    @property
    def finalized(self) -> bool:
        return self.latch.finalized

    @property
    def finalize_reason(self) -> Optional[FinalizeReason]:
        return self.latch.claimed_by

    @property
    def buffered_audio(self) -> bytes:
        return self.lease.snapshot()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    async def result(self) -> Verdict:
        """Wait for the definitive verdict; raises the definitive error if any."""
        return await asyncio.shield(self.outcome)


class RecordingController:
    """Owns the capture device and runs one recording at a time."""

    def __init__(
        self,
        device: AudioCaptureDevice,
        client: AssessmentClient,
        timers: Timers,
        *,
        timeout_seconds: float = settings.recording_timeout_seconds,
        grace_seconds: float = settings.poll_grace_seconds,
        poll_interval_seconds: float = settings.poll_interval_seconds,
        poll_timeout_seconds: float = settings.poll_timeout_seconds,
        definitive_timeout_seconds: float = settings.definitive_timeout_seconds,
        min_poll_audio_bytes: int = settings.min_poll_audio_bytes,
        capture_timeout_seconds: float = settings.capture_timeout_seconds,
    ):
        self.device = ExclusiveDevice(device, capture_timeout_seconds)
        self.client = client
        self.timers = timers
        self.timeout_seconds = timeout_seconds
        self.grace_seconds = grace_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds
        self.definitive_timeout_seconds = definitive_timeout_seconds
        self.min_poll_audio_bytes = min_poll_audio_bytes
        self.active: Optional[RecordingSession] = None

    @property
    def state(self) -> RecordingState:
        return self.active.state if self.active is not None else RecordingState.IDLE

    # ---- Start / Stop ----

    async def start(self, word_index: int, target_word: str) -> RecordingSession:
        if self.active is not None:
            raise RecordingBusy(
                f"word {self.active.word_index} is still {self.active.state.value}"
            )

        lease = await self.device.acquire(word_index)
        session = RecordingSession(
            word_index=word_index,
            target_word=target_word,
            lease=lease,
            outcome=asyncio.get_running_loop().create_future(),
        )
        self.active = session

        session.timeout_handle = self.timers.call_later(
            self.timeout_seconds, functools.partial(self._on_timeout, session)
        )
        session.poll_handle = self.timers.call_every(
            self.poll_interval_seconds,
            functools.partial(self._poll, session),
            first_delay=self.grace_seconds,
        )
        logger.info("Recording started for word %d (%r)", word_index, target_word)
        return session

    async def stop(self) -> None:
        """Explicit stop: finalize the active recording with a definitive call."""
        session = self.active
        if session is None:
            return
        await self._finalize_definitive(session, FinalizeReason.STOPPED)

    # ---- Timelines ----

    async def _on_timeout(self, session: RecordingSession) -> None:
        await self._finalize_definitive(session, FinalizeReason.TIMEOUT)

    async def _poll(self, session: RecordingSession) -> None:
        """Speculative assessment of the audio captured so far."""
        if session.finalized or session.poll_in_flight:
            return

        session.poll_in_flight = True
        try:
            audio = session.buffered_audio
            if len(audio) < self.min_poll_audio_bytes:
                logger.debug(
                    "Poll skipped for word %d: only %d bytes", session.word_index, len(audio)
                )
                return
            session.polls += 1
            wav = await asyncio.to_thread(transcode, audio, session.word_index)
            verdict = await assess_within(
                self.client, wav, session.target_word, self.poll_timeout_seconds
            )
        except Exception as exc:
            logger.debug(
                "Speculative assessment #%d for word %d discarded: %s",
                session.polls, session.word_index, exc,
            )
            return
        finally:
            session.poll_in_flight = False

        if not is_qualifying(verdict.is_correct, verdict.accuracy_score):
            return
        if not self._claim(session, FinalizeReason.EARLY_SUCCESS):
            return

        try:
            await session.lease.release()
        except CaptureTimeout as exc:
            logger.warning("Word %d: %s", session.word_index, exc)
        finally:
            self._resolve(session, verdict=verdict)

    # ---- Finalization ----

    def _claim(self, session: RecordingSession, reason: FinalizeReason) -> bool:
        try:
            session.latch.claim(reason)
        except ConcurrentFinalizeAttempt as exc:
            logger.debug("Finalize of word %d ignored: %s", session.word_index, exc)
            return False

        session.state = RecordingState.FINALIZING
        for handle in (session.poll_handle, session.timeout_handle):
            if handle is not None:
                handle.cancel()
        logger.info(
            "Finalizing word %d after %.2fs (%s)",
            session.word_index, session.elapsed, reason.value,
        )
        return True

    async def _finalize_definitive(
        self, session: RecordingSession, reason: FinalizeReason
    ) -> None:
        if not self._claim(session, reason):
            return

        try:
            audio = await session.lease.release()
            wav = await asyncio.to_thread(transcode, audio, session.word_index)
            verdict = await assess_within(
                self.client, wav, session.target_word, self.definitive_timeout_seconds
            )
        except Exception as exc:
            logger.warning(
                "Definitive assessment failed for word %d: %s", session.word_index, exc
            )
            self._resolve(session, error=exc)
        else:
            self._resolve(session, verdict=verdict)
        finally:
            if not session.outcome.done():
                self._resolve(
                    session,
                    error=AssessmentServiceError("recording finalization was interrupted"),
                )

    def _resolve(
        self,
        session: RecordingSession,
        verdict: Optional[Verdict] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        session.state = RecordingState.RESULTED
        if self.active is session:
            self.active = None

        if session.outcome.done():
            return
        if error is not None:
            session.outcome.set_exception(error)
        else:
            session.outcome.set_result(verdict)
