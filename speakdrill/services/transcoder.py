"""Convert captured audio to the PCM WAV format the assessment service expects.

Whatever the capture device produced (any container, sample rate or
channel count) becomes a 16 kHz, mono, 16-bit little-endian PCM stream
wrapped in a canonical 44-byte RIFF/WAVE header.
"""

from __future__ import annotations

import io
import logging
import wave

import numpy as np
import soundfile as sf
from pydub import AudioSegment

from speakdrill.config import settings
from speakdrill.errors import TranscodeError

logger = logging.getLogger(__name__)

WAV_HEADER_BYTES = 44
SAMPLE_WIDTH_BYTES = 2


def decode_audio(data: bytes) -> tuple[np.ndarray, int]:
    """Decode an audio blob to float32 samples shaped (frames, channels).

    libsndfile covers WAV/FLAC/OGG directly; browser containers such as
    WebM/Opus go through ffmpeg via pydub.
    """
    if not data:
        raise TranscodeError("empty audio buffer")

    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        return samples, int(sample_rate)
    except RuntimeError as exc:
        logger.debug("libsndfile could not decode %d bytes (%s), trying ffmpeg", len(data), exc)

    try:
        segment = AudioSegment.from_file(io.BytesIO(data))
    except Exception as exc:  # pydub surfaces ffmpeg failures as many exception types
        raise TranscodeError(f"could not decode {len(data)} bytes of audio: {exc}") from exc

    full_scale = float(1 << (8 * segment.sample_width - 1))
    samples = np.array(segment.get_array_of_samples(), dtype=np.float32) / full_scale
    return samples.reshape(-1, segment.channels), int(segment.frame_rate)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average all channels per frame."""
    if samples.ndim == 1:
        return samples.astype(np.float32, copy=False)
    if samples.shape[1] == 1:
        return samples[:, 0].astype(np.float32, copy=False)
    return samples.mean(axis=1).astype(np.float32, copy=False)


def resample(y: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Linear-interpolation resampling of a mono signal."""
    if sr_in == sr_out or len(y) == 0:
        return y
    new_len = max(1, int(round(len(y) * sr_out / float(sr_in))))
    x_old = np.linspace(0, len(y), num=len(y), endpoint=False)
    x_new = np.linspace(0, len(y), num=new_len, endpoint=False)
    return np.interp(x_new, x_old, y).astype(np.float32, copy=False)


def quantize(y: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1] and scale to signed 16-bit little-endian integers."""
    clipped = np.clip(y, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype("<i2")


def encode_wav(pcm: np.ndarray, sample_rate: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buf.getvalue()


def transcode(data: bytes, word_index: int | None = None) -> bytes:
    """Turn a raw capture buffer into assessment-ready PCM WAV bytes.

    Raises TranscodeError (tagged with ``word_index``) if the buffer
    cannot be decoded.
    """
    target_rate = settings.target_sample_rate
    try:
        samples, sample_rate = decode_audio(data)
    except TranscodeError as exc:
        exc.word_index = word_index
        logger.warning("Transcode failed for word %s: %s", word_index, exc)
        raise

    if samples.shape[1] == 1 and sample_rate == target_rate:
        mono = samples[:, 0]
    else:
        mono = resample(to_mono(samples), sample_rate, target_rate)

    return encode_wav(quantize(mono), target_rate)
