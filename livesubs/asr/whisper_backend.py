"""OpenAI Whisper transcription API backend."""

from __future__ import annotations

import io
import wave
from typing import List

import aiohttp

from ..audio import SAMPLE_WIDTH, AudioSegment
from ..config import WhisperApiConfig
from ..languages import speech_to_translation_lang
from .base import (
    HttpRecognitionBackend,
    ProviderDescriptor,
    ProviderError,
    RecognitionResult,
    WordTiming,
)

OPENAI_WHISPER = ProviderDescriptor(
    id="openai-whisper",
    name="OpenAI Whisper V3",
    description="OpenAI Whisper with enhanced accuracy and multilingual support",
    realtime=False,
    confidence=False,
    word_timestamps=True,
    speaker_diarization=False,
    max_languages=99,
)

MIN_SEGMENT_BYTES = 16_000

WHISPER_LANGUAGES = [
    "af", "am", "ar", "as", "az", "ba", "be", "bg", "bn", "bo", "br", "bs", "ca", "cs", "cy",
    "da", "de", "el", "en", "es", "et", "eu", "fa", "fi", "fo", "fr", "gl", "gu", "ha", "haw",
    "he", "hi", "hr", "ht", "hu", "hy", "id", "is", "it", "ja", "jw", "ka", "kk", "km", "kn",
    "ko", "la", "lb", "ln", "lo", "lt", "lv", "mg", "mi", "mk", "ml", "mn", "mr", "ms", "mt",
    "my", "ne", "nl", "nn", "no", "oc", "pa", "pl", "ps", "pt", "ro", "ru", "sa", "sd", "si",
    "sk", "sl", "sn", "so", "sq", "sr", "su", "sv", "sw", "ta", "te", "tg", "th", "tk", "tl",
    "tr", "tt", "uk", "ur", "uz", "vi", "yi", "yo", "zh",
]


def pcm_to_wav(pcm: bytes, sample_rate: int = 16_000) -> bytes:
    """Wrap mono int16 PCM in a RIFF/WAVE container."""

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


class WhisperApiBackend(HttpRecognitionBackend):
    """Upload segments as WAV files to ``/audio/transcriptions``."""

    descriptor = OPENAI_WHISPER

    def __init__(self, config: WhisperApiConfig, timeout: float = 30.0) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        if not self.configured:
            raise ProviderError("OPENAI_API_KEY not configured.")
        if len(segment) < MIN_SEGMENT_BYTES:
            raise ProviderError(
                f"Audio buffer too small: {len(segment)} bytes (minimum: {MIN_SEGMENT_BYTES} bytes)"
            )
        whisper_language = speech_to_translation_lang(language)
        form = aiohttp.FormData()
        form.add_field(
            "file",
            pcm_to_wav(segment.pcm, segment.sample_rate),
            filename="segment.wav",
            content_type="audio/wav",
        )
        form.add_field("model", self.config.model)
        form.add_field("language", whisper_language)
        form.add_field("response_format", "verbose_json")
        form.add_field("temperature", str(self.config.temperature))
        form.add_field("timestamp_granularities[]", "word")

        session = self._ensure_session()
        url = f"{self.config.base_url.rstrip('/')}/audio/transcriptions"
        async with session.post(url, data=form, headers=self._headers()) as resp:
            await self._raise_for_status(resp, "Whisper")
            data = await resp.json()
        return self.parse_response(data, whisper_language, is_final=segment.is_final)

    @staticmethod
    def parse_response(data: dict, language: str, is_final: bool = False) -> RecognitionResult:
        if not isinstance(data, dict):
            raise ProviderError("Whisper returned a non-object response.")
        words = [
            WordTiming(word=item.get("word", ""), start=item.get("start"), end=item.get("end"))
            for item in data.get("words") or []
        ]
        text = (data.get("text") or "").strip()
        return RecognitionResult(
            transcript=text,
            # Whisper reports no confidence.
            confidence=0.0,
            is_final=is_final,
            language=language,
            words=words,
            provider=OPENAI_WHISPER.id,
        )

    async def test_connection(self) -> bool:
        if not self.configured:
            return False
        session = self._ensure_session()
        url = f"{self.config.base_url.rstrip('/')}/models/{self.config.model}"
        async with session.get(url, headers=self._headers()) as resp:
            await self._raise_for_status(resp, "Whisper")
        return True

    def supported_languages(self) -> List[str]:
        return list(WHISPER_LANGUAGES)
