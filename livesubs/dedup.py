"""Suppression of near-repeated recognition hypotheses."""

from __future__ import annotations

from typing import Optional

from .config import DedupConfig


class ResultDeduplicator:
    """Decide whether a transcript is a near-repeat of the previous one.

    Recognition backends re-send a growing hypothesis for the same utterance,
    so a new text only counts as news when its length moved by more than the
    ratio, or when neither text contains the other. Interim results use the
    wider ratio; finals are expected to sit close to the last interim.
    """

    def __init__(self, config: Optional[DedupConfig] = None) -> None:
        self.config = config or DedupConfig()

    def _ratio(self, final: bool) -> float:
        return self.config.final_ratio if final else self.config.interim_ratio

    def is_duplicate(self, new_text: str, last_text: str, final: bool = False) -> bool:
        if not last_text:
            return False
        ratio = self._ratio(final)
        new_len = len(new_text)
        last_len = len(last_text)
        if new_len > last_len * (1 + ratio):
            return False
        if new_len < last_len * (1 - ratio):
            return False
        if new_text not in last_text and last_text not in new_text:
            return False
        return True

    def should_emit(self, new_text: str, last_text: str, final: bool = False) -> bool:
        if not new_text or not new_text.strip():
            return False
        return not self.is_duplicate(new_text.strip(), last_text, final=final)
