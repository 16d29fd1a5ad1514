"""SQLAlchemy ORM models for persisted practice progress."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from speakdrill.database import Base


# ---------------------------------------------------------------------------
# Practice progress
# ---------------------------------------------------------------------------


class PracticeProgress(Base):
    """One resumable SessionProgress snapshot per learner+activity key."""

    __tablename__ = "practice_progress"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    list_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)  # SessionProgress.to_dict()
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
