"""Per-session PCM buffering and segment dispatch policy."""

from __future__ import annotations

from .audio import SAMPLE_WIDTH, AudioSegment
from .config import SegmentConfig


class SegmentAccumulator:
    """Collect decoded PCM until a segment is worth sending to recognition.

    A segment is ready once the buffer holds at least ``dispatch_bytes`` and
    ``min_interval_seconds`` have passed since the previous dispatch. After an
    interim dispatch the trailing ``keep_tail_bytes`` stay in the buffer so the
    next segment starts with some acoustic context instead of a cut word.
    """

    def __init__(
        self,
        config: SegmentConfig,
        sample_rate: int = 16_000,
        now: float = 0.0,
    ) -> None:
        self.config = config
        self.sample_rate = sample_rate
        self._buffer = bytearray()
        self._last_dispatch = now
        # Keep the retained tail aligned to whole samples.
        self._keep_tail = config.keep_tail_bytes - (config.keep_tail_bytes % SAMPLE_WIDTH)

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def last_dispatch(self) -> float:
        return self._last_dispatch

    @property
    def pending(self) -> bytes:
        return bytes(self._buffer)

    def append(self, pcm: bytes) -> None:
        self._buffer.extend(pcm)

    def reset(self, now: float) -> None:
        self._buffer.clear()
        self._last_dispatch = now

    def should_dispatch(self, now: float) -> bool:
        if len(self._buffer) < self.config.dispatch_bytes:
            return False
        return now - self._last_dispatch >= self.config.min_interval_seconds

    def take_segment(self, now: float, final: bool = False) -> AudioSegment:
        segment = AudioSegment(
            pcm=bytes(self._buffer),
            sample_rate=self.sample_rate,
            is_final=final,
        )
        if final or self._keep_tail <= 0:
            self._buffer.clear()
        elif len(self._buffer) > self._keep_tail:
            del self._buffer[: len(self._buffer) - self._keep_tail]
        self._last_dispatch = now
        return segment

    def discard(self, now: float) -> None:
        """Drop everything buffered, e.g. after a silent segment."""

        self._buffer.clear()
        self._last_dispatch = now
