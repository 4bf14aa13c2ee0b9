"""HTTP translation backends (DeepL default, LibreTranslate, Google)."""

from __future__ import annotations

import abc
import logging
from typing import Dict, Optional

import aiohttp

from ..config import TranslationConfig


class TranslationError(Exception):
    """Raised when a translation backend call fails."""


_DEEPL_TARGETS: Dict[str, str] = {"en": "EN-US", "pt": "PT-PT"}


def deepl_target_code(language: str) -> str:
    base = language.split("-")[0].lower()
    if "-" in language:
        return language.upper()
    return _DEEPL_TARGETS.get(base, base.upper())


def deepl_source_code(language: str) -> str:
    return language.split("-")[0].upper()


class TranslationBackend(abc.ABC):
    """One remote translator."""

    name = "translator"

    def __init__(self, timeout: float = 8.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @abc.abstractmethod
    async def translate(self, text: str, source: str, target: str) -> str:
        """Return the translated text or raise TranslationError."""

    async def test_connection(self) -> bool:
        await self.translate("test", "en", "de")
        return True

    @staticmethod
    async def _check(resp: aiohttp.ClientResponse, name: str) -> None:
        if resp.status != 200:
            body = await resp.text()
            raise TranslationError(f"{name} HTTP {resp.status}: {body[:300]}")


class DeepLBackend(TranslationBackend):
    name = "deepl"

    def __init__(self, api_key: str, url: Optional[str] = None, timeout: float = 8.0) -> None:
        super().__init__(timeout=timeout)
        self.api_key = api_key
        if url:
            self.url = url.rstrip("/")
        elif api_key.endswith(":fx"):
            self.url = "https://api-free.deepl.com"
        else:
            self.url = "https://api.deepl.com"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

    async def translate(self, text: str, source: str, target: str) -> str:
        payload = {
            "text": [text],
            "source_lang": deepl_source_code(source),
            "target_lang": deepl_target_code(target),
            "preserve_formatting": True,
            "formality": "default",
        }
        session = self._ensure_session()
        async with session.post(f"{self.url}/v2/translate", json=payload, headers=self._headers()) as resp:
            await self._check(resp, "DeepL")
            data = await resp.json()
        translations = data.get("translations") or []
        if not translations or "text" not in translations[0]:
            raise TranslationError(f"DeepL response missing translations: {data}")
        return translations[0]["text"]

    async def test_connection(self) -> bool:
        session = self._ensure_session()
        async with session.get(f"{self.url}/v2/usage", headers=self._headers()) as resp:
            await self._check(resp, "DeepL")
            usage = await resp.json()
        count = usage.get("character_count", 0)
        limit = usage.get("character_limit") or 0
        if limit:
            logging.info("DeepL usage: %s/%s characters (%.2f%%)", count, limit, count / limit * 100)
        return True


class LibreTranslateBackend(TranslationBackend):
    name = "libre"

    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 8.0) -> None:
        super().__init__(timeout=timeout)
        self.url = url.rstrip("/")
        self.api_key = api_key

    async def translate(self, text: str, source: str, target: str) -> str:
        payload = {
            "q": text,
            "source": source.split("-")[0].lower(),
            "target": target.split("-")[0].lower(),
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key
        session = self._ensure_session()
        async with session.post(f"{self.url}/translate", json=payload) as resp:
            await self._check(resp, "LibreTranslate")
            data = await resp.json()
        translated = data.get("translatedText")
        if translated is None:
            raise TranslationError(f"LibreTranslate response missing translatedText: {data}")
        return translated


class GoogleTranslateBackend(TranslationBackend):
    name = "google"

    URL = "https://translation.googleapis.com/language/translate/v2"

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 8.0) -> None:
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.model = model

    async def translate(self, text: str, source: str, target: str) -> str:
        payload = {
            "q": text,
            "source": source.split("-")[0].lower(),
            "target": target.split("-")[0].lower(),
            "format": "text",
        }
        if self.model:
            payload["model"] = self.model
        session = self._ensure_session()
        async with session.post(self.URL, params={"key": self.api_key}, json=payload) as resp:
            await self._check(resp, "Google Translate")
            data = await resp.json()
        translations = data.get("data", {}).get("translations", [])
        if not translations:
            raise TranslationError("Google Translate returned no translations.")
        return translations[0].get("translatedText", "")


def create_backend(config: TranslationConfig) -> Optional[TranslationBackend]:
    """Instantiate the configured backend, or None when credentials are missing."""

    provider = config.provider.lower()
    timeout = config.timeout_seconds
    if provider == "deepl":
        if not config.deepl_api_key:
            logging.warning("DeepL API key not found. Translation features will be disabled.")
            return None
        return DeepLBackend(config.deepl_api_key, url=config.deepl_url, timeout=timeout)
    if provider == "libre":
        return LibreTranslateBackend(config.libre_url, api_key=config.libre_api_key, timeout=timeout)
    if provider == "google":
        if not config.google_api_key:
            logging.error("Google translation provider selected but GOOGLE_TRANSLATE_API_KEY not set.")
            return None
        return GoogleTranslateBackend(config.google_api_key, model=config.google_model, timeout=timeout)
    logging.error("Unknown translation provider: %s", config.provider)
    return None
