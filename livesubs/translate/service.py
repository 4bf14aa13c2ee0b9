"""Cached translation service used by the streaming pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..config import TranslationConfig
from .backends import TranslationBackend, TranslationError, create_backend
from .cache import TranslationCache


@dataclass
class TranslationOutcome:
    text: str
    from_cache: bool = False
    failed: bool = False
    error: Optional[str] = None


class TranslationService:
    """Translate transcript lines, memoizing results across sessions.

    The cache is shared by every connection. All operations on it happen on
    the event loop without awaiting in between, so no lock is held while the
    backend call is in flight and sessions never wait on each other.
    """

    def __init__(
        self,
        backend: Optional[TranslationBackend],
        cache: Optional[TranslationCache] = None,
        timeout: float = 8.0,
    ) -> None:
        self.backend = backend
        self.cache = cache or TranslationCache()
        self._timeout = timeout

    @classmethod
    def from_config(
        cls, config: TranslationConfig, clock: Callable[[], float] = time.monotonic
    ) -> "TranslationService":
        cache = TranslationCache(
            max_size=config.cache_max_size, ttl_seconds=config.cache_ttl_seconds, clock=clock
        )
        return cls(create_backend(config), cache=cache, timeout=config.timeout_seconds)

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    async def close(self) -> None:
        if self.backend:
            await self.backend.close()

    async def translate(self, text: str, source: str, target: str) -> TranslationOutcome:
        if not text or not text.strip():
            return TranslationOutcome(text=text)

        cached = self.cache.get(text, target)
        if cached is not None:
            logging.debug("Translation cache hit for: %r", text)
            return TranslationOutcome(text=cached, from_cache=True)

        if self.backend is None:
            return TranslationOutcome(text=text, failed=True, error="Translator not configured")

        try:
            translated = await asyncio.wait_for(
                self.backend.translate(text, source, target), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logging.error("Translation %s->%s timed out after %.1fs", source, target, self._timeout)
            return TranslationOutcome(text=text, failed=True, error="Translation timed out")
        except TranslationError as exc:
            logging.error("Translation %s->%s failed: %s", source, target, exc)
            return TranslationOutcome(text=text, failed=True, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logging.exception("Translation %s->%s failed: %s", source, target, exc)
            return TranslationOutcome(text=text, failed=True, error=str(exc) or exc.__class__.__name__)

        self.cache.put(text, target, translated)
        return TranslationOutcome(text=translated)

    async def translate_batch(
        self, texts: Sequence[str], source: str, target: str
    ) -> List[TranslationOutcome]:
        """Translate several lines; cache hits are resolved without a backend call."""

        return list(
            await asyncio.gather(*(self.translate(text, source, target) for text in texts))
        )

    async def test_connection(self) -> bool:
        if self.backend is None:
            return False
        try:
            return bool(
                await asyncio.wait_for(self.backend.test_connection(), timeout=self._timeout)
            )
        except Exception as exc:  # noqa: BLE001
            logging.error("Translation backend check failed: %s", exc)
            return False
