"""Language code lookups used to validate session configuration."""

from __future__ import annotations

from typing import Dict, List

SPEECH_LANGUAGES: Dict[str, str] = {
    "cs-CZ": "Czech (Czech Republic)",
    "sk-SK": "Slovak (Slovakia)",
    "en-US": "English (United States)",
    "en-GB": "English (United Kingdom)",
    "de-DE": "German (Germany)",
    "fr-FR": "French (France)",
    "es-ES": "Spanish (Spain)",
    "it-IT": "Italian (Italy)",
    "pl-PL": "Polish (Poland)",
    "pt-PT": "Portuguese (Portugal)",
    "pt-BR": "Portuguese (Brazil)",
    "nl-NL": "Dutch (Netherlands)",
    "uk-UA": "Ukrainian (Ukraine)",
    "ru-RU": "Russian (Russia)",
    "hu-HU": "Hungarian (Hungary)",
    "sv-SE": "Swedish (Sweden)",
    "da-DK": "Danish (Denmark)",
    "fi-FI": "Finnish (Finland)",
    "ja-JP": "Japanese (Japan)",
    "ko-KR": "Korean (South Korea)",
    "zh-CN": "Chinese (Simplified)",
}

TRANSLATION_LANGUAGES: Dict[str, str] = {
    "cs": "Czech",
    "sk": "Slovak",
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pl": "Polish",
    "pt": "Portuguese",
    "nl": "Dutch",
    "uk": "Ukrainian",
    "ru": "Russian",
    "hu": "Hungarian",
    "sv": "Swedish",
    "da": "Danish",
    "fi": "Finnish",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
}


def is_valid_speech_language(code: object) -> bool:
    return isinstance(code, str) and code in SPEECH_LANGUAGES


def is_valid_translation_language(code: object) -> bool:
    return isinstance(code, str) and code in TRANSLATION_LANGUAGES


def speech_to_translation_lang(code: str) -> str:
    """Strip the region from a speech code: ``cs-CZ`` -> ``cs``."""

    return (code or "").split("-")[0].lower()


def language_display(code: str, kind: str = "speech") -> str:
    table = SPEECH_LANGUAGES if kind == "speech" else TRANSLATION_LANGUAGES
    return table.get(code, code)


def speech_language_codes() -> List[str]:
    return list(SPEECH_LANGUAGES)
