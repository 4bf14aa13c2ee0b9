"""Tests for the WAV replay client."""

from __future__ import annotations

import io
import tempfile
import unittest
import wave
from contextlib import redirect_stdout
from pathlib import Path

import numpy as np
from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from livesubs.asr import (
    ProviderDescriptor,
    RecognitionBackend,
    RecognitionProviderRegistry,
    RecognitionResult,
)
from livesubs.audio import AudioSegment
from livesubs.config import Settings
from livesubs.pipeline import SessionOrchestrator
from livesubs.replay import chunk_pcm16, read_pcm16_mono_wav, replay_wav
from livesubs.server import create_app
from livesubs.translate import TranslationService


def write_wav(path: Path, pcm: bytes, rate: int = 16_000, channels: int = 1) -> None:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(pcm)


class StaticRecognizer(RecognitionBackend):
    descriptor = ProviderDescriptor(id="static", name="Static")

    async def transcribe(self, segment: AudioSegment, language: str) -> RecognitionResult:
        return RecognitionResult(transcript="zkouška", confidence=0.9, is_final=segment.is_final)

    async def test_connection(self) -> bool:
        return True


class WavHelpersTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)

    def test_reads_mono_pcm16(self) -> None:
        pcm = np.arange(1_600, dtype="<i2").tobytes()
        write_wav(self.tmp / "ok.wav", pcm)
        self.assertEqual(read_pcm16_mono_wav(self.tmp / "ok.wav"), pcm)

    def test_rejects_other_formats(self) -> None:
        write_wav(self.tmp / "stereo.wav", bytes(400), channels=2)
        write_wav(self.tmp / "fast.wav", bytes(400), rate=44_100)
        for name in ("stereo.wav", "fast.wav"):
            with self.subTest(name=name):
                with self.assertRaises(ValueError):
                    read_pcm16_mono_wav(self.tmp / name)

    def test_chunking(self) -> None:
        chunks = chunk_pcm16(bytes(10_000), chunk_ms=100)
        self.assertEqual([len(c) for c in chunks], [3_200, 3_200, 3_200, 400])


class ReplayTests(AioHTTPTestCase):
    async def get_application(self) -> web.Application:
        orchestrator = SessionOrchestrator(
            RecognitionProviderRegistry([StaticRecognizer()]),
            TranslationService(None),
            settings=Settings(),
        )
        return create_app(orchestrator)

    async def test_replay_collects_events(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            wav_path = Path(tmpdir) / "speech.wav"
            write_wav(wav_path, np.full(8_000, 3_000, dtype="<i2").tobytes())
            url = str(self.server.make_url("/ws")).replace("http://", "ws://", 1)
            with redirect_stdout(io.StringIO()) as out:
                events = await replay_wav(
                    url, wav_path, chunk_ms=100, realtime=False, languages={"translationTo": "de"}
                )
        names = [event["event"] for event in events]
        self.assertEqual(names[0], "languages-updated")
        self.assertIn("transcription-started", names)
        self.assertEqual(names[-1], "transcription-stopped")
        results = [event["data"] for event in events if event["event"] == "transcription-result"]
        self.assertEqual(len(results), 1)
        self.assertTrue(results[0]["isFinal"])
        self.assertTrue(results[0]["translationFailed"])
        self.assertIn("[FINAL] Zkouška.", out.getvalue())


if __name__ == "__main__":
    unittest.main()
