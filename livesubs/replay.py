"""Stream a WAV file to a running server and collect the events it sends back."""

from __future__ import annotations

import asyncio
import json
import logging
import wave
from pathlib import Path
from typing import Any, Dict, List, Optional

import websockets


def read_pcm16_mono_wav(path: Path, sample_rate: int = 16_000) -> bytes:
    with wave.open(str(path), "rb") as wf:
        channels = wf.getnchannels()
        sample_width = wf.getsampwidth()
        rate = wf.getframerate()
        if channels != 1:
            raise ValueError(f"wav must be mono, got channels={channels}")
        if sample_width != 2:
            raise ValueError(f"wav must be 16-bit PCM, got sampwidth={sample_width}")
        if rate != sample_rate:
            raise ValueError(f"wav must be {sample_rate} Hz, got sample_rate={rate}")
        return wf.readframes(wf.getnframes())


def chunk_pcm16(raw: bytes, chunk_ms: int, sample_rate: int = 16_000) -> List[bytes]:
    samples_per_chunk = max(1, int(sample_rate * (chunk_ms / 1000.0)))
    bytes_per_chunk = samples_per_chunk * 2
    return [raw[i : i + bytes_per_chunk] for i in range(0, len(raw), bytes_per_chunk)]


def _event(name: str, data: Any = None) -> str:
    return json.dumps({"event": name, "data": data})


async def _recv_loop(ws, events: List[Dict[str, Any]], stopped: asyncio.Event) -> None:
    async for raw in ws:
        if isinstance(raw, bytes):
            continue
        message = json.loads(raw)
        events.append(message)
        name = message.get("event")
        data = message.get("data") or {}
        if name == "transcription-result":
            marker = "FINAL" if data.get("isFinal") else "interim"
            print(f"[{marker}] {data.get('transcript')}  ->  {data.get('translation')}")
        elif name in {"transcription-error", "stt-provider-error"}:
            print(f"[error] {data.get('error')}")
        if name == "transcription-stopped":
            stopped.set()
            return


async def replay_wav(
    url: str,
    wav_path: Path,
    chunk_ms: int = 250,
    realtime: bool = True,
    languages: Optional[Dict[str, str]] = None,
    provider: Optional[str] = None,
    timeout: float = 60.0,
) -> List[Dict[str, Any]]:
    """Send the file as binary frames between start/stop and return all events."""

    pcm = read_pcm16_mono_wav(wav_path)
    chunks = chunk_pcm16(pcm, chunk_ms)
    events: List[Dict[str, Any]] = []
    stopped = asyncio.Event()

    async with websockets.connect(url, max_size=16 * 1024 * 1024) as ws:
        receiver = asyncio.create_task(_recv_loop(ws, events, stopped), name="replay-receiver")
        if languages:
            await ws.send(_event("set-languages", languages))
        if provider:
            await ws.send(_event("set-stt-provider", {"provider": provider}))
        await ws.send(_event("start-transcription"))
        for chunk in chunks:
            await ws.send(chunk)
            if realtime:
                await asyncio.sleep(chunk_ms / 1000.0)
        await ws.send(_event("stop-transcription"))
        try:
            await asyncio.wait_for(stopped.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logging.warning("No transcription-stopped within %.0fs", timeout)
        receiver.cancel()
        try:
            await receiver
        except asyncio.CancelledError:
            pass
    return events
