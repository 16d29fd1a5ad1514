"""Exclusive ownership of the audio capture device."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from speakdrill.config import settings
from speakdrill.errors import CaptureTimeout, RecordingBusy

logger = logging.getLogger(__name__)


class AudioCaptureDevice(Protocol):
    """Microphone-like source producing audio in its own native format."""

    async def start(self) -> None:
        ...

    def snapshot(self) -> bytes:
        """Audio buffered since start(), without stopping capture."""
        ...

    async def stop(self) -> bytes:
        """Stop capturing and return the full buffer."""
        ...


class CaptureLease:
    """Held capture device; release() stops it exactly once."""

    def __init__(
        self,
        device: AudioCaptureDevice,
        lock: asyncio.Lock,
        timeout: float,
        word_index: Optional[int] = None,
    ):
        self.device = device
        self.timeout = timeout
        self.word_index = word_index
        self._lock = lock
        self._released = False
        self._audio = b""

    def snapshot(self) -> bytes:
        if self._released:
            return self._audio
        return self.device.snapshot()

    async def release(self) -> bytes:
        """Stop the device and free it; the lock is freed even if stop() stalls."""
        if self._released:
            return self._audio
        self._released = True
        try:
            self._audio = await asyncio.wait_for(self.device.stop(), self.timeout)
        except asyncio.TimeoutError as exc:
            raise CaptureTimeout(
                f"capture device did not stop within {self.timeout:.1f}s", self.word_index
            ) from exc
        finally:
            self._lock.release()
            logger.debug("Capture device released (%d bytes buffered)", len(self._audio))
        return self._audio


class ExclusiveDevice:
    """Hands out at most one CaptureLease at a time for a device."""

    def __init__(
        self,
        device: AudioCaptureDevice,
        timeout: float = settings.capture_timeout_seconds,
    ):
        self.device = device
        self.timeout = timeout
        self._lock = asyncio.Lock()

    async def acquire(self, word_index: Optional[int] = None) -> CaptureLease:
        if self._lock.locked():
            raise RecordingBusy("capture device is already recording")
        await self._lock.acquire()
        try:
            await asyncio.wait_for(self.device.start(), self.timeout)
        except asyncio.TimeoutError as exc:
            self._lock.release()
            logger.warning("Capture device did not start within %.1fs", self.timeout)
            raise CaptureTimeout(
                f"capture device did not start within {self.timeout:.1f}s", word_index
            ) from exc
        except BaseException:
            self._lock.release()
            raise
        return CaptureLease(self.device, self._lock, self.timeout, word_index)
