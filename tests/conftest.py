import asyncio
import io
import wave

import numpy as np
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from speakdrill.database import Base
from speakdrill.models import PracticeProgress  # noqa: F401
from speakdrill.services.assessment import Verdict
from speakdrill.services.progress import InMemoryProgressStore, ProgressTracker
from speakdrill.services.recording import RecordingController
from speakdrill.services.words import WordList


def encode_test_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """16-bit PCM WAV from float samples shaped (frames,) or (frames, channels)."""
    if samples.ndim == 1:
        samples = samples[:, None]
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(samples.shape[1])
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buf.getvalue()


@pytest.fixture
def make_wav():
    return encode_test_wav


@pytest.fixture
def speech_wav():
    """Half a second of a 220 Hz tone, already in the wire format."""
    t = np.arange(8000) / 16000.0
    return encode_test_wav(0.3 * np.sin(2 * np.pi * 220 * t), 16000)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCaptureDevice:
    def __init__(self, audio: bytes):
        self.audio = audio
        self.starts = 0
        self.stops = 0
        self.recording = False

    async def start(self):
        self.starts += 1
        self.recording = True

    def snapshot(self) -> bytes:
        return self.audio

    async def stop(self) -> bytes:
        self.stops += 1
        self.recording = False
        return self.audio


class ScriptedClient:
    """Returns queued verdicts (or raises queued exceptions), then ``default``."""

    def __init__(self, *script, default=Verdict(is_correct=False, accuracy_score=40.0)):
        self.script = list(script)
        self.default = default
        self.calls = []
        self.delay = 0.0

    async def assess(self, audio: bytes, target_word: str) -> Verdict:
        self.calls.append(target_word)
        await asyncio.sleep(self.delay)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item


class ManualTimer:
    def __init__(self, kind, delay, callback):
        self.kind = kind
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.cancel_calls = 0

    def cancel(self):
        self.cancel_calls += 1
        self.cancelled = True

    async def fire(self):
        if not self.cancelled:
            await self.callback()


class ManualTimers:
    """Timers that only fire when a test says so."""

    def __init__(self):
        self.created = []

    def call_later(self, delay, callback):
        timer = ManualTimer("once", delay, callback)
        self.created.append(timer)
        return timer

    def call_every(self, interval, callback, first_delay):
        timer = ManualTimer("every", interval, callback)
        self.created.append(timer)
        return timer

    @property
    def timeout(self) -> ManualTimer:
        return [t for t in self.created if t.kind == "once"][-1]

    @property
    def poll(self) -> ManualTimer:
        return [t for t in self.created if t.kind == "every"][-1]


@pytest.fixture
def device(speech_wav):
    return FakeCaptureDevice(speech_wav)


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def controller(device, client, timers):
    return RecordingController(
        device, client, timers,
        timeout_seconds=5.5,
        grace_seconds=1.0,
        poll_interval_seconds=1.5,
        poll_timeout_seconds=0.5,
        definitive_timeout_seconds=1.0,
    )


async def wait_until_recording(controller, attempts=200):
    for _ in range(attempts):
        if controller.active is not None:
            return controller.active
        await asyncio.sleep(0)
    raise AssertionError("recording never started")


@pytest.fixture
def recording_started():
    return wait_until_recording


# ---------------------------------------------------------------------------
# Word lists & stores
# ---------------------------------------------------------------------------


@pytest.fixture
def words():
    return WordList.from_pairs([("apple", "äpple"), ("house", "hus"), ("river", "flod")])


@pytest.fixture
def memory_store():
    return InMemoryProgressStore()


@pytest.fixture
def tracker(memory_store):
    return ProgressTracker(memory_store)


@pytest.fixture
async def sessionmaker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
