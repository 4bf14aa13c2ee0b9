"""Punctuation and formatting normalization for recognized text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

STYLES = ("formal", "casual", "technical")
DEFAULT_STYLE = "formal"

_TERMINAL = ".?!…。？！"
_CJK_LANGUAGES = {"ja", "zh", "ko"}

# Sentence openers that make a bare sentence a question.
_INTERROGATIVES: Dict[str, FrozenSet[str]] = {
    "en": frozenset(
        {"what", "why", "how", "who", "whom", "whose", "where", "when", "which",
         "is", "are", "do", "does", "did", "can", "could", "would", "will", "should"}
    ),
    "cs": frozenset({"co", "proč", "jak", "kdo", "kde", "kdy", "který", "která", "které", "kolik", "jestli"}),
    "sk": frozenset({"čo", "prečo", "ako", "kto", "kde", "kedy", "ktorý", "koľko"}),
    "de": frozenset({"was", "warum", "wie", "wer", "wo", "wann", "welche", "welcher", "ist", "sind"}),
    "es": frozenset({"qué", "por", "cómo", "quién", "dónde", "cuándo", "cuál"}),
    "fr": frozenset({"que", "pourquoi", "comment", "qui", "où", "quand", "quel", "quelle", "est-ce"}),
    "pl": frozenset({"co", "dlaczego", "jak", "kto", "gdzie", "kiedy", "który", "czy"}),
}


@dataclass
class EnrichmentResult:
    text: str
    applied: bool


def _normalize_spacing(text: str) -> str:
    normalized = re.sub(r"\s+", " ", text.strip())
    normalized = re.sub(r"\s+([,.;:?!…])", r"\1", normalized)
    normalized = re.sub(r"([\(\[\{])\s+", r"\1", normalized)
    normalized = re.sub(r"\s+([\)\]\}])", r"\1", normalized)
    normalized = re.sub(r"([,;:])(?=[^\s\d/,.;:?!…)\]}])", r"\1 ", normalized)
    return normalized


def _capitalize_first(text: str) -> str:
    for index, char in enumerate(text):
        if char.isalpha():
            return text[:index] + char.upper() + text[index + 1:]
    return text


def _base_language(language: str) -> str:
    return (language or "").split("-")[0].split("_")[0].lower()


def _terminal_mark(text: str, language: str) -> str:
    base = _base_language(language)
    if base in _CJK_LANGUAGES:
        return "。"
    first_word = re.split(r"[\s,]+", text.lstrip("¿¡\"'"), maxsplit=1)[0].lower()
    if first_word in _INTERROGATIVES.get(base, frozenset()):
        return "?"
    return "."


def _ensure_terminal(text: str, language: str) -> str:
    if not text or text[-1] in _TERMINAL:
        return text
    stripped = text.rstrip(",;:")
    if not stripped:
        return text
    return stripped + _terminal_mark(stripped, language)


def _apply_style(text: str, language: str, style: str) -> str:
    normalized = _normalize_spacing(text)
    if not normalized:
        return normalized
    if style == "casual":
        return _capitalize_first(normalized)
    if style == "technical":
        return _ensure_terminal(normalized, language)
    return _ensure_terminal(_capitalize_first(normalized), language)


class TextEnricher:
    """Rule-based punctuation pass applied before and after translation.

    Every rule is idempotent, so enriching already enriched text is a no-op.
    Failures never propagate: the caller gets the original text back with
    ``applied=False``.
    """

    def __init__(self, default_style: str = DEFAULT_STYLE) -> None:
        self.default_style = default_style if default_style in STYLES else DEFAULT_STYLE

    def resolve_style(self, style: Optional[str]) -> str:
        if style and style.lower() in STYLES:
            return style.lower()
        return self.default_style

    def enrich(self, text: str, language: str, style: Optional[str] = None) -> EnrichmentResult:
        if not text or not text.strip():
            return EnrichmentResult(text=text, applied=False)
        try:
            enriched = _apply_style(text, language, self.resolve_style(style))
        except Exception as exc:  # noqa: BLE001
            logging.exception("Punctuation enrichment failed: %s", exc)
            return EnrichmentResult(text=text, applied=False)
        return EnrichmentResult(text=enriched, applied=True)
