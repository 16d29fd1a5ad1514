"""Boundary to the external pronunciation assessment service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from speakdrill.config import settings
from speakdrill.errors import AssessmentServiceError, AssessmentTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict:
    is_correct: bool
    accuracy_score: float
    feedback_text: str = ""
    transcript: str = ""


class AssessmentClient(Protocol):
    async def assess(self, audio: bytes, target_word: str) -> Verdict:
        ...


def parse_verdict(payload: Any) -> Verdict:
    """Build a Verdict from a service response body.

    A body carrying both ``isCorrect`` and ``accuracyScore`` is usable even
    when it also reports an error (the service answers its own timeouts
    with a complete, failing verdict). Anything else is a service error.
    """
    if not isinstance(payload, dict):
        raise AssessmentServiceError(f"unexpected response body: {type(payload).__name__}")

    if payload.get("isCorrect") is None or payload.get("accuracyScore") is None:
        detail = payload.get("error") or "response has no verdict"
        raise AssessmentServiceError(str(detail))

    if not isinstance(payload["isCorrect"], bool):
        raise AssessmentServiceError(f"bad isCorrect: {payload['isCorrect']!r}")

    try:
        score = float(payload["accuracyScore"])
    except (TypeError, ValueError) as exc:
        raise AssessmentServiceError(f"bad accuracyScore: {payload['accuracyScore']!r}") from exc

    return Verdict(
        is_correct=payload["isCorrect"],
        accuracy_score=min(max(score, 0.0), 100.0),
        feedback_text=payload.get("feedback") or payload.get("feedbackText") or "",
        transcript=payload.get("transcript") or "",
    )


async def assess_within(
    client: AssessmentClient,
    audio: bytes,
    target_word: str,
    timeout: float,
) -> Verdict:
    """Run one assessment call under a bounded wait."""
    try:
        return await asyncio.wait_for(client.assess(audio, target_word), timeout)
    except asyncio.TimeoutError as exc:
        raise AssessmentTimeout(f"no verdict for {target_word!r} within {timeout:.1f}s") from exc
    except (AssessmentTimeout, AssessmentServiceError):
        raise
    except Exception as exc:
        raise AssessmentServiceError(f"assessment of {target_word!r} failed: {exc}") from exc


class HttpAssessmentClient:
    """Posts PCM WAV audio and the target word as multipart form data."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url or settings.assessment_url
        self.api_key = api_key if api_key is not None else settings.assessment_api_key
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.definitive_timeout_seconds)
        return self._client

    async def assess(self, audio: bytes, target_word: str) -> Verdict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        files = {"audio": ("recording.wav", audio, "audio/wav")}

        try:
            response = await self._get_client().post(
                self.url, data={"word": target_word}, files=files, headers=headers
            )
        except httpx.TimeoutException as exc:
            raise AssessmentTimeout(f"assessment request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise AssessmentServiceError(f"assessment request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise AssessmentServiceError(
                f"assessment service returned {response.status_code} with a non-JSON body"
            ) from exc

        if response.is_error:
            logger.info(
                "Assessment service returned %d for %r: %s",
                response.status_code, target_word, payload.get("error") if isinstance(payload, dict) else payload,
            )
        return parse_verdict(payload)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
