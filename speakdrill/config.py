"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


@dataclass(frozen=True)
class Settings:
    # --- Database ---
    database_url: str = os.getenv(
        "SPEAKDRILL_DB_URL", f"sqlite+aiosqlite:///{DATA_DIR / 'speakdrill.db'}"
    )

    # --- Pronunciation assessment service ---
    assessment_url: str = os.getenv(
        "ASSESSMENT_URL", "http://localhost:3000/api/speech/pronunciation-assessment"
    )
    assessment_api_key: str = os.getenv("ASSESSMENT_API_KEY", "")

    # --- Recording session timings (seconds) ---
    recording_timeout_seconds: float = float(os.getenv("RECORDING_TIMEOUT_SECONDS", "5.5"))
    poll_grace_seconds: float = 1.0  # no early verdicts on near-empty audio
    poll_interval_seconds: float = 1.5
    poll_timeout_seconds: float = 1.2  # bounded wait of one speculative call
    definitive_timeout_seconds: float = 10.0
    capture_timeout_seconds: float = 2.0  # bounded wait of device start / stop

    # Speculative polls with less buffered audio than this are skipped.
    min_poll_audio_bytes: int = 1000

    # --- Scoring ---
    correct_threshold: int = 85
    close_threshold: int = 70
    xp_per_word: int = 2

    # --- Wire format expected by the assessment service ---
    target_sample_rate: int = 16000


settings = Settings()

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
