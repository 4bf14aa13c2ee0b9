"""Abstractions shared by speech recognition backends."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp

from ..audio import AudioSegment


class ProviderError(Exception):
    """Raised by a backend when a recognition call fails."""


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static capability metadata for one recognition provider."""

    id: str
    name: str
    description: str = ""
    realtime: bool = False
    confidence: bool = False
    word_timestamps: bool = False
    speaker_diarization: bool = False
    max_languages: int = 0

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "realtime": self.realtime,
            "confidence": self.confidence,
            "wordTimestamps": self.word_timestamps,
            "speakerDiarization": self.speaker_diarization,
            "maxLanguages": self.max_languages,
        }


@dataclass
class WordTiming:
    word: str
    start: Optional[float] = None
    end: Optional[float] = None
    confidence: Optional[float] = None


@dataclass
class RecognitionResult:
    """Represents the outcome of one recognition call."""

    transcript: str
    confidence: float = 0.0
    is_final: bool = False
    language: Optional[str] = None
    speaker: Optional[str] = None
    words: List[WordTiming] = field(default_factory=list)
    provider: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(
        cls,
        error: str,
        language: Optional[str] = None,
        provider: Optional[str] = None,
        is_final: bool = False,
    ) -> "RecognitionResult":
        return cls(
            transcript="",
            confidence=0.0,
            is_final=is_final,
            language=language,
            provider=provider,
            error=error,
        )


class RecognitionBackend(abc.ABC):
    """Interface for batch speech-to-text backends."""

    descriptor: ProviderDescriptor

    @property
    def configured(self) -> bool:
        """Whether credentials are present for this backend."""
        return True

    @abc.abstractmethod
    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        """Recognize one segment; raise ProviderError on failure."""

    @abc.abstractmethod
    async def test_connection(self) -> bool:
        """Lightweight round-trip against the backend."""

    def supported_languages(self) -> List[str]:
        return []

    async def close(self) -> None:  # pragma: no cover - optional hook
        return None


def clamp_confidence(value: object) -> float:
    try:
        confidence = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(max(confidence, 0.0), 1.0)


class HttpRecognitionBackend(RecognitionBackend):
    """Backend that talks to a REST API through a lazily created aiohttp session."""

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @staticmethod
    async def _raise_for_status(resp: aiohttp.ClientResponse, provider: str) -> None:
        if resp.status != 200:
            body = await resp.text()
            raise ProviderError(f"{provider} HTTP {resp.status}: {body[:300]}")
