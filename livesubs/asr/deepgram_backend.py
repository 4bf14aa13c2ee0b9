"""Deepgram pre-recorded transcription backend."""

from __future__ import annotations

from typing import List, Optional

from ..audio import AudioSegment
from ..config import DeepgramConfig
from ..languages import speech_language_codes, speech_to_translation_lang
from .base import (
    HttpRecognitionBackend,
    ProviderDescriptor,
    ProviderError,
    RecognitionResult,
    WordTiming,
    clamp_confidence,
)

DEEPGRAM_NOVA3 = ProviderDescriptor(
    id="deepgram-nova-3",
    name="Deepgram Nova-3",
    description="Deepgram Nova-3 real-time and batch transcription",
    realtime=True,
    confidence=True,
    word_timestamps=True,
    speaker_diarization=True,
    max_languages=50,
)


class DeepgramBackend(HttpRecognitionBackend):
    """Post raw linear16 PCM to ``/listen`` and normalize the first alternative."""

    descriptor = DEEPGRAM_NOVA3

    def __init__(self, config: DeepgramConfig, timeout: float = 30.0) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key) and self.config.api_key != "your_deepgram_api_key_here"

    def _headers(self) -> dict:
        return {"Authorization": f"Token {self.config.api_key}"}

    def _params(self, segment: AudioSegment, language: str) -> dict:
        return {
            "model": self.config.model,
            "language": language,
            "smart_format": "true",
            "punctuate": "true",
            "diarize": "true",
            "encoding": "linear16",
            "sample_rate": str(segment.sample_rate),
            "channels": "1",
        }

    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        if not self.configured:
            raise ProviderError("DEEPGRAM_API_KEY not configured.")
        dg_language = speech_to_translation_lang(language)
        session = self._ensure_session()
        headers = {**self._headers(), "Content-Type": "application/octet-stream"}
        async with session.post(
            f"{self.config.base_url.rstrip('/')}/listen",
            params=self._params(segment, dg_language),
            data=segment.pcm,
            headers=headers,
        ) as resp:
            await self._raise_for_status(resp, "Deepgram")
            data = await resp.json()
        return self.parse_response(data, dg_language, is_final=segment.is_final)

    @staticmethod
    def parse_response(data: dict, language: str, is_final: bool = False) -> RecognitionResult:
        if not isinstance(data, dict):
            raise ProviderError("Deepgram returned a non-object response.")
        channels = (data.get("results") or {}).get("channels") or []
        alternatives = channels[0].get("alternatives") if channels else None
        if not alternatives:
            return RecognitionResult(
                transcript="", is_final=is_final, language=language, provider=DEEPGRAM_NOVA3.id
            )
        alternative = alternatives[0]

        speaker: Optional[str] = None
        words: List[WordTiming] = []
        for item in alternative.get("words") or []:
            if speaker is None and item.get("speaker") is not None:
                speaker = f"Speaker {int(item['speaker']) + 1}"
            words.append(
                WordTiming(
                    word=item.get("punctuated_word") or item.get("word", ""),
                    start=item.get("start"),
                    end=item.get("end"),
                    confidence=item.get("confidence"),
                )
            )

        return RecognitionResult(
            transcript=(alternative.get("transcript") or "").strip(),
            confidence=clamp_confidence(alternative.get("confidence")),
            is_final=is_final,
            language=language,
            speaker=speaker,
            words=words,
            provider=DEEPGRAM_NOVA3.id,
        )

    async def test_connection(self) -> bool:
        if not self.configured:
            return False
        session = self._ensure_session()
        async with session.get(
            f"{self.config.base_url.rstrip('/')}/projects", headers=self._headers()
        ) as resp:
            await self._raise_for_status(resp, "Deepgram")
        return True

    def supported_languages(self) -> List[str]:
        return speech_language_codes()
