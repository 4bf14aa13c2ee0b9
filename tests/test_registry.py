"""Unit tests for the recognition provider registry and response parsing."""

from __future__ import annotations

import asyncio
import unittest
from typing import List, Optional

from livesubs.asr import (
    DeepgramBackend,
    GoogleSpeechBackend,
    ProviderDescriptor,
    ProviderError,
    RecognitionBackend,
    RecognitionProviderRegistry,
    RecognitionResult,
    UnknownProviderError,
    WhisperApiBackend,
    build_registry,
)
from livesubs.asr.whisper_backend import pcm_to_wav
from livesubs.audio import AudioSegment
from livesubs.config import ConfigurationError, GoogleSpeechConfig, ProviderConfig


class FakeBackend(RecognitionBackend):
    def __init__(
        self,
        provider_id: str,
        transcript: str = "ahoj",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.descriptor = ProviderDescriptor(id=provider_id, name=provider_id.title())
        self.transcript = transcript
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        self.calls.append(language)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RecognitionResult(transcript=self.transcript, confidence=0.8, is_final=segment.is_final)

    async def test_connection(self) -> bool:
        if self.error is not None:
            raise self.error
        return True

    def supported_languages(self) -> List[str]:
        return ["cs-CZ"]


SEGMENT = AudioSegment(pcm=bytes(32_000))


class RegistryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.alpha = FakeBackend("alpha")
        self.beta = FakeBackend("beta-two", transcript="nazdar")
        self.registry = RecognitionProviderRegistry([self.alpha, self.beta])

    def test_requires_a_backend(self) -> None:
        with self.assertRaises(ValueError):
            RecognitionProviderRegistry([])

    def test_first_backend_is_default(self) -> None:
        self.assertEqual(self.registry.active_provider, "alpha")
        registry = RecognitionProviderRegistry([self.alpha, self.beta], default="BETA_TWO")
        self.assertEqual(registry.active_provider, "beta-two")

    def test_resolve_variants(self) -> None:
        self.assertEqual(self.registry.resolve("BETA_TWO"), "beta-two")
        self.assertEqual(self.registry.resolve(" beta-two "), "beta-two")
        for bad in ("gamma", "", None, 42):
            with self.subTest(bad=bad):
                with self.assertRaises(UnknownProviderError) as ctx:
                    self.registry.resolve(bad)
                self.assertEqual(ctx.exception.available, ["alpha", "beta-two"])
                self.assertIsInstance(ctx.exception, ConfigurationError)

    def test_set_provider(self) -> None:
        self.assertEqual(self.registry.set_provider("beta_two"), "beta-two")
        self.assertEqual(self.registry.active_provider, "beta-two")
        with self.assertRaises(UnknownProviderError):
            self.registry.set_provider("gamma")
        self.assertEqual(self.registry.active_provider, "beta-two")

    def test_descriptors(self) -> None:
        self.assertEqual([d.id for d in self.registry.descriptors()], ["alpha", "beta-two"])
        self.assertEqual(self.registry.descriptor("beta-two").name, "Beta-Two")
        self.assertEqual(self.registry.supported_languages(), ["cs-CZ"])
        self.assertIn("wordTimestamps", self.registry.descriptor().as_dict())

    async def test_transcribe_uses_active_or_explicit_provider(self) -> None:
        result = await self.registry.transcribe_buffer(SEGMENT, "cs-CZ")
        self.assertEqual(result.transcript, "ahoj")
        self.assertEqual(result.provider, "alpha")
        result = await self.registry.transcribe_buffer(SEGMENT, "cs-CZ", provider_id="beta-two")
        self.assertEqual(result.transcript, "nazdar")
        self.assertEqual(result.provider, "beta-two")
        self.assertEqual(self.alpha.calls, ["cs-CZ"])

    async def test_provider_error_becomes_failed_result(self) -> None:
        registry = RecognitionProviderRegistry([FakeBackend("x", error=ProviderError("HTTP 403"))])
        with self.assertLogs(level="ERROR"):
            result = await registry.transcribe_buffer(SEGMENT, "cs-CZ")
        self.assertTrue(result.failed)
        self.assertEqual(result.transcript, "")
        self.assertEqual(result.error, "HTTP 403")
        self.assertEqual(result.provider, "x")

    async def test_unexpected_error_becomes_failed_result(self) -> None:
        registry = RecognitionProviderRegistry([FakeBackend("x", error=KeyError("results"))])
        with self.assertLogs(level="ERROR"):
            result = await registry.transcribe_buffer(SEGMENT, "cs-CZ")
        self.assertTrue(result.failed)

    async def test_timeout_becomes_failed_result(self) -> None:
        registry = RecognitionProviderRegistry([FakeBackend("x", delay=1.0)], timeout=0.01)
        with self.assertLogs(level="ERROR"):
            result = await registry.transcribe_buffer(SEGMENT, "cs-CZ")
        self.assertEqual(result.error, "Recognition timed out")

    async def test_unknown_provider_at_call_time(self) -> None:
        result = await self.registry.transcribe_buffer(SEGMENT, "cs-CZ", provider_id="gamma")
        self.assertTrue(result.failed)
        self.assertEqual(self.alpha.calls, [])

    async def test_connection_check(self) -> None:
        self.assertTrue(await self.registry.test_connection())
        registry = RecognitionProviderRegistry([FakeBackend("x", error=ProviderError("down"))])
        with self.assertLogs(level="ERROR"):
            self.assertFalse(await registry.test_connection())


class BuildRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_builtin_providers(self) -> None:
        with self.assertLogs(level="WARNING"):
            registry = build_registry(ProviderConfig())
        self.assertEqual(
            registry.provider_ids(), ["google-speech", "openai-whisper", "deepgram-nova-3"]
        )
        self.assertEqual(registry.active_provider, "google-speech")
        await registry.close()

    async def test_unconfigured_backend_reports_failure(self) -> None:
        with self.assertLogs(level="WARNING"):
            registry = build_registry(ProviderConfig(default="openai-whisper"))
        with self.assertLogs(level="ERROR"):
            result = await registry.transcribe_buffer(SEGMENT, "cs-CZ")
        self.assertTrue(result.failed)
        self.assertIn("OPENAI_API_KEY", result.error)
        await registry.close()

    async def test_google_rejects_short_segment(self) -> None:
        backend = GoogleSpeechBackend(GoogleSpeechConfig(api_key="k"))
        with self.assertRaises(ProviderError):
            await backend.transcribe(AudioSegment(pcm=bytes(1_000)), "cs-CZ")
        await backend.close()


class ResponseParsingTests(unittest.TestCase):
    def test_google_joins_results_and_averages_confidence(self) -> None:
        data = {
            "results": [
                {
                    "alternatives": [
                        {
                            "transcript": "dobrý den",
                            "confidence": 0.9,
                            "words": [{"word": "dobrý", "startTime": "0.100s", "endTime": "0.500s"}],
                        }
                    ],
                    "languageCode": "cs-cz",
                },
                {"alternatives": [{"transcript": " jak se máte", "confidence": 0.7}]},
            ]
        }
        result = GoogleSpeechBackend.parse_response(data, "cs-CZ", is_final=True)
        self.assertEqual(result.transcript, "dobrý den jak se máte")
        self.assertAlmostEqual(result.confidence, 0.8)
        self.assertTrue(result.is_final)
        self.assertEqual(result.language, "cs-cz")
        self.assertEqual(result.words[0].start, 0.1)
        self.assertEqual(result.provider, "google-speech")

    def test_google_empty_response(self) -> None:
        result = GoogleSpeechBackend.parse_response({}, "cs-CZ")
        self.assertEqual(result.transcript, "")
        self.assertFalse(result.failed)

    def test_whisper_has_no_confidence(self) -> None:
        data = {"text": " Ahoj světe ", "words": [{"word": "Ahoj", "start": 0.0, "end": 0.4}]}
        result = WhisperApiBackend.parse_response(data, "cs")
        self.assertEqual(result.transcript, "Ahoj světe")
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.words[0].end, 0.4)

    def test_deepgram_speaker_label(self) -> None:
        data = {
            "results": {
                "channels": [
                    {
                        "alternatives": [
                            {
                                "transcript": "hello there",
                                "confidence": 1.7,
                                "words": [
                                    {"word": "hello", "punctuated_word": "Hello", "speaker": 1},
                                    {"word": "there", "speaker": 1},
                                ],
                            }
                        ]
                    }
                ]
            }
        }
        result = DeepgramBackend.parse_response(data, "en")
        self.assertEqual(result.transcript, "hello there")
        self.assertEqual(result.speaker, "Speaker 2")
        self.assertEqual(result.confidence, 1.0)
        self.assertEqual(result.words[0].word, "Hello")

    def test_non_object_responses_raise(self) -> None:
        for parser in (
            GoogleSpeechBackend.parse_response,
            WhisperApiBackend.parse_response,
            DeepgramBackend.parse_response,
        ):
            with self.subTest(parser=parser):
                with self.assertRaises(ProviderError):
                    parser([], "en")

    def test_pcm_to_wav(self) -> None:
        wav = pcm_to_wav(bytes(3_200))
        self.assertTrue(wav.startswith(b"RIFF"))
        self.assertEqual(len(wav), 44 + 3_200)


if __name__ == "__main__":
    unittest.main()
