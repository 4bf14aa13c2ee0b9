"""Audio frame decoding and level analysis."""

from __future__ import annotations

import base64
import binascii
import math
from array import array
from dataclasses import dataclass
from typing import Any

import numpy as np

PCM_ENCODING = "linear16"
SAMPLE_WIDTH = 2  # pcm_s16le
_INT16_MIN = -32768
_INT16_MAX = 32767
_INT_TYPECODES = "bBhHiIlLqQ"


class DecodeError(Exception):
    """Raised when an incoming audio frame cannot be interpreted as PCM."""


@dataclass(frozen=True)
class AudioSegment:
    """A contiguous span of PCM audio dispatched as one recognition request."""

    pcm: bytes
    sample_rate: int = 16_000
    encoding: str = PCM_ENCODING
    is_final: bool = False

    @property
    def sample_count(self) -> int:
        return len(self.pcm) // SAMPLE_WIDTH

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.sample_count / self.sample_rate

    def __len__(self) -> int:
        return len(self.pcm)


def _samples_to_pcm(samples: np.ndarray) -> bytes:
    if samples.dtype.kind not in "iu":
        raise DecodeError(f"Audio samples must be integers, got dtype {samples.dtype}.")
    if samples.size == 0:
        return b""
    if samples.dtype.itemsize > 2 or samples.dtype == np.uint16:
        low = int(samples.min())
        high = int(samples.max())
        if low < _INT16_MIN or high > _INT16_MAX:
            raise DecodeError(f"Audio samples out of int16 range ({low}..{high}).")
    return np.ascontiguousarray(samples, dtype="<i2").tobytes()


def _bytes_to_pcm(data: bytes) -> bytes:
    if len(data) % SAMPLE_WIDTH:
        raise DecodeError(f"PCM byte buffer has odd length {len(data)}.")
    return bytes(data)


def decode(payload: Any) -> bytes:
    """Normalize an incoming audio payload into little-endian int16 mono PCM.

    Accepted shapes are integer sample sequences, raw byte buffers, typed
    views (``memoryview``, ``array.array``, integer numpy arrays), base64
    strings and serialized Node buffers (``{"type": "Buffer", "data": [...]}``).
    No resampling is performed.
    """

    if isinstance(payload, (bytes, bytearray)):
        return _bytes_to_pcm(bytes(payload))

    if isinstance(payload, np.ndarray):
        if payload.dtype.itemsize == 1 and payload.dtype.kind in "iu":
            return _bytes_to_pcm(payload.tobytes())
        return _samples_to_pcm(payload.reshape(-1))

    if isinstance(payload, array):
        if payload.typecode not in _INT_TYPECODES:
            raise DecodeError(f"Unsupported array typecode {payload.typecode!r}.")
        if payload.itemsize == 1:
            return _bytes_to_pcm(payload.tobytes())
        return _samples_to_pcm(np.frombuffer(payload.tobytes(), dtype=np.dtype(payload.typecode)))

    if isinstance(payload, memoryview):
        if payload.format in ("B", "b", "c") or payload.itemsize == 1:
            return _bytes_to_pcm(payload.tobytes())
        try:
            samples = np.asarray(payload)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Unsupported memoryview format {payload.format!r}.") from exc
        return _samples_to_pcm(samples.reshape(-1))

    if isinstance(payload, str):
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError("String audio payload is not valid base64.") from exc
        return _bytes_to_pcm(raw)

    if isinstance(payload, dict):
        if payload.get("type") == "Buffer" and isinstance(payload.get("data"), list):
            try:
                raw = bytes(payload["data"])
            except (TypeError, ValueError) as exc:
                raise DecodeError("Buffer payload contains values outside 0..255.") from exc
            return _bytes_to_pcm(raw)
        raise DecodeError(f"Unsupported audio payload object with keys {sorted(payload)}.")

    if isinstance(payload, (list, tuple)):
        if any(isinstance(sample, bool) or not isinstance(sample, int) for sample in payload):
            raise DecodeError("Audio sample sequence must contain only integers.")
        try:
            samples = np.asarray(payload, dtype=np.int64)
        except OverflowError as exc:
            raise DecodeError("Audio sample exceeds int64 range.") from exc
        return _samples_to_pcm(samples)

    raise DecodeError(f"Unsupported audio payload type {type(payload).__name__}.")


def _as_samples(pcm: bytes) -> np.ndarray:
    usable = len(pcm) - (len(pcm) % SAMPLE_WIDTH)
    return np.frombuffer(pcm[:usable], dtype="<i2")


def peak_amplitude(pcm: bytes) -> int:
    samples = _as_samples(pcm)
    if samples.size == 0:
        return 0
    # Widen before abs() so -32768 does not wrap.
    return int(np.abs(samples.astype(np.int32)).max())


def rms_dbfs(pcm: bytes) -> float:
    """RMS level in dBFS; ``-inf`` for digital silence."""

    samples = _as_samples(pcm)
    if samples.size == 0:
        return float("-inf")
    rms = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    if rms <= 0:
        return float("-inf")
    return 20.0 * math.log10(rms / 32767.0)


def is_silent(pcm: bytes, threshold: int = 100) -> bool:
    """True when no sample's absolute value exceeds ``threshold``."""

    return peak_amplitude(pcm) <= threshold
