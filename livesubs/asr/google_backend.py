"""Google Cloud Speech-to-Text REST backend."""

from __future__ import annotations

import base64
import logging
from typing import List, Optional

from ..audio import AudioSegment
from ..config import GoogleSpeechConfig
from ..languages import speech_language_codes
from .base import (
    HttpRecognitionBackend,
    ProviderDescriptor,
    ProviderError,
    RecognitionResult,
    WordTiming,
    clamp_confidence,
)

GOOGLE_SPEECH = ProviderDescriptor(
    id="google-speech",
    name="Google Speech-to-Text",
    description="Google Cloud Speech-to-Text API with real-time processing",
    realtime=True,
    confidence=True,
    word_timestamps=True,
    speaker_diarization=True,
    max_languages=125,
)

MIN_SEGMENT_BYTES = 16_000  # ~0.5 seconds at 16 kHz int16


def _parse_offset(value: object) -> Optional[float]:
    """Google encodes offsets as duration strings such as ``"1.200s"``."""

    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return float(text)
    except ValueError:
        return None


class GoogleSpeechBackend(HttpRecognitionBackend):
    """Send whole segments to ``speech:recognize`` as base64 LINEAR16."""

    descriptor = GOOGLE_SPEECH

    def __init__(self, config: GoogleSpeechConfig, timeout: float = 30.0) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def _request_body(self, segment: AudioSegment, language: str) -> dict:
        return {
            "audio": {"content": base64.b64encode(segment.pcm).decode("ascii")},
            "config": {
                "encoding": "LINEAR16",
                "sampleRateHertz": segment.sample_rate,
                "languageCode": language,
                "alternativeLanguageCodes": ["en-US"],
                "enableAutomaticPunctuation": True,
                "enableWordTimeOffsets": True,
                "useEnhanced": True,
                "model": self.config.model,
                "maxAlternatives": 1,
            },
        }

    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        if not self.configured:
            raise ProviderError("GOOGLE_API_KEY not configured.")
        if len(segment) < MIN_SEGMENT_BYTES:
            raise ProviderError(
                f"Audio buffer too small: {len(segment)} bytes (minimum: {MIN_SEGMENT_BYTES} bytes)"
            )
        session = self._ensure_session()
        params = {"key": self.config.api_key}
        async with session.post(
            self.config.url, params=params, json=self._request_body(segment, language)
        ) as resp:
            await self._raise_for_status(resp, "Google Speech")
            data = await resp.json()
        return self.parse_response(data, language, is_final=segment.is_final)

    @staticmethod
    def parse_response(data: dict, language: str, is_final: bool = False) -> RecognitionResult:
        if not isinstance(data, dict):
            raise ProviderError("Google Speech returned a non-object response.")
        results = data.get("results") or []
        if not results:
            logging.debug("Google Speech: no transcription results")
            return RecognitionResult(
                transcript="", is_final=is_final, language=language, provider=GOOGLE_SPEECH.id
            )

        transcripts: List[str] = []
        confidences: List[float] = []
        words: List[WordTiming] = []
        for result in results:
            alternatives = result.get("alternatives") or []
            if not alternatives:
                continue
            alternative = alternatives[0]
            text = (alternative.get("transcript") or "").strip()
            if text:
                transcripts.append(text)
            if "confidence" in alternative:
                confidences.append(clamp_confidence(alternative["confidence"]))
            for word in alternative.get("words") or []:
                words.append(
                    WordTiming(
                        word=word.get("word", ""),
                        start=_parse_offset(word.get("startTime") or word.get("startOffset")),
                        end=_parse_offset(word.get("endTime") or word.get("endOffset")),
                        confidence=word.get("confidence"),
                    )
                )

        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return RecognitionResult(
            transcript=" ".join(transcripts).strip(),
            confidence=confidence,
            is_final=is_final,
            language=results[0].get("languageCode") or language,
            words=words,
            provider=GOOGLE_SPEECH.id,
        )

    async def test_connection(self) -> bool:
        if not self.configured:
            logging.warning("Google Speech API key missing; connection test skipped.")
            return False
        # One second of silence is the cheapest valid request.
        sample = AudioSegment(pcm=bytes(32_000), sample_rate=16_000)
        await self.transcribe(sample, "en-US")
        return True

    def supported_languages(self) -> List[str]:
        return speech_language_codes()
