"""Unit tests for the translation cache and service."""

from __future__ import annotations

import asyncio
import unittest
from typing import List, Tuple

from livesubs.config import TranslationConfig
from livesubs.translate import (
    DeepLBackend,
    GoogleTranslateBackend,
    LibreTranslateBackend,
    TranslationBackend,
    TranslationCache,
    TranslationError,
    TranslationService,
    create_backend,
)
from livesubs.translate.backends import deepl_source_code, deepl_target_code


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTranslator(TranslationBackend):
    name = "fake"

    def __init__(self, delay: float = 0.0, error: Exception = None) -> None:
        super().__init__(timeout=1.0)
        self.calls: List[Tuple[str, str, str]] = []
        self.delay = delay
        self.error = error

    async def translate(self, text: str, source: str, target: str) -> str:
        self.calls.append((text, source, target))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"[{target}] {text}"


class TranslationCacheTests(unittest.TestCase):
    def test_key_ignores_case_and_surrounding_whitespace(self) -> None:
        cache = TranslationCache()
        cache.put("Hello", "de", "Hallo")
        self.assertEqual(cache.get("  hello ", "de"), "Hallo")
        self.assertIsNone(cache.get("hello", "fr"))

    def test_evicts_oldest_insert_when_full(self) -> None:
        cache = TranslationCache(max_size=3)
        for index in range(4):
            cache.put(f"text {index}", "en", f"out {index}")
        self.assertEqual(len(cache), 3)
        self.assertIsNone(cache.get("text 0", "en"))
        self.assertEqual(cache.get("text 3", "en"), "out 3")

    def test_reads_do_not_protect_from_eviction(self) -> None:
        cache = TranslationCache(max_size=3)
        for text in ("a", "b", "c"):
            cache.put(text, "en", text.upper())
        self.assertEqual(cache.get("a", "en"), "A")
        cache.put("d", "en", "D")
        self.assertIsNone(cache.get("a", "en"))
        self.assertEqual(cache.get("b", "en"), "B")

    def test_reinsert_keeps_slot(self) -> None:
        cache = TranslationCache(max_size=2)
        cache.put("a", "en", "A")
        cache.put("b", "en", "B")
        cache.put("a", "en", "A2")
        cache.put("c", "en", "C")
        self.assertIsNone(cache.get("a", "en"))
        self.assertEqual(cache.get("b", "en"), "B")

    def test_entries_expire_lazily(self) -> None:
        clock = FakeClock()
        cache = TranslationCache(ttl_seconds=60, clock=clock)
        cache.put("hello", "de", "Hallo")
        clock.now = 60
        self.assertEqual(cache.get("hello", "de"), "Hallo")
        clock.now = 60.5
        self.assertEqual(len(cache), 1)
        self.assertIsNone(cache.get("hello", "de"))
        self.assertEqual(len(cache), 0)

    def test_stats(self) -> None:
        cache = TranslationCache(max_size=5)
        cache.put("a", "en", "A")
        cache.get("a", "en")
        cache.get("b", "en")
        stats = cache.stats()
        self.assertEqual(stats["size"], 1)
        self.assertEqual(stats["maxSize"], 5)
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 1)
        self.assertNotIn("entries", stats)


class TranslationServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_second_request_served_from_cache(self) -> None:
        backend = FakeTranslator()
        service = TranslationService(backend)
        first = await service.translate("Dobrý den", "cs", "en")
        second = await service.translate("dobrý den ", "cs", "en")
        self.assertEqual(first.text, "[en] Dobrý den")
        self.assertFalse(first.from_cache)
        self.assertTrue(second.from_cache)
        self.assertEqual(second.text, first.text)
        self.assertEqual(len(backend.calls), 1)

    async def test_cache_bounded(self) -> None:
        backend = FakeTranslator()
        service = TranslationService(backend, cache=TranslationCache(max_size=1000))
        for index in range(1001):
            await service.translate(f"line {index}", "cs", "en")
        self.assertEqual(len(service.cache), 1000)
        again = await service.translate("line 0", "cs", "en")
        self.assertFalse(again.from_cache)
        self.assertEqual(len(backend.calls), 1002)

    async def test_backend_failure_returns_original(self) -> None:
        backend = FakeTranslator(error=TranslationError("DeepL HTTP 456"))
        service = TranslationService(backend)
        with self.assertLogs(level="ERROR"):
            outcome = await service.translate("Ahoj", "cs", "en")
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome.text, "Ahoj")
        self.assertIn("456", outcome.error)
        self.assertEqual(len(service.cache), 0)

    async def test_unexpected_backend_error_returns_original(self) -> None:
        service = TranslationService(FakeTranslator(error=KeyError("translations")))
        with self.assertLogs(level="ERROR"):
            outcome = await service.translate("Ahoj", "cs", "en")
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome.text, "Ahoj")

    async def test_timeout_returns_original(self) -> None:
        service = TranslationService(FakeTranslator(delay=1.0), timeout=0.01)
        with self.assertLogs(level="ERROR"):
            outcome = await service.translate("Ahoj", "cs", "en")
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome.text, "Ahoj")

    async def test_unconfigured_service(self) -> None:
        service = TranslationService(None)
        self.assertFalse(service.enabled)
        outcome = await service.translate("Ahoj", "cs", "en")
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome.text, "Ahoj")
        self.assertEqual(outcome.error, "Translator not configured")
        self.assertFalse(await service.test_connection())

    async def test_blank_text_not_sent(self) -> None:
        backend = FakeTranslator()
        outcome = await TranslationService(backend).translate("  ", "cs", "en")
        self.assertFalse(outcome.failed)
        self.assertEqual(backend.calls, [])

    async def test_batch(self) -> None:
        backend = FakeTranslator()
        service = TranslationService(backend)
        await service.translate("a", "cs", "en")
        outcomes = await service.translate_batch(["a", "b"], "cs", "en")
        self.assertEqual([o.text for o in outcomes], ["[en] a", "[en] b"])
        self.assertEqual([o.from_cache for o in outcomes], [True, False])
        self.assertEqual(len(backend.calls), 2)

    async def test_from_config_without_key_is_disabled(self) -> None:
        with self.assertLogs(level="WARNING"):
            service = TranslationService.from_config(TranslationConfig(cache_max_size=10))
        self.assertFalse(service.enabled)
        self.assertEqual(service.cache.max_size, 10)


class BackendFactoryTests(unittest.TestCase):
    def test_deepl_free_key_uses_free_endpoint(self) -> None:
        backend = create_backend(TranslationConfig(deepl_api_key="abc:fx"))
        self.assertIsInstance(backend, DeepLBackend)
        self.assertEqual(backend.url, "https://api-free.deepl.com")
        paid = create_backend(TranslationConfig(deepl_api_key="abc"))
        self.assertEqual(paid.url, "https://api.deepl.com")

    def test_other_providers(self) -> None:
        self.assertIsInstance(
            create_backend(TranslationConfig(provider="libre")), LibreTranslateBackend
        )
        self.assertIsInstance(
            create_backend(TranslationConfig(provider="google", google_api_key="k")),
            GoogleTranslateBackend,
        )
        with self.assertLogs(level="ERROR"):
            self.assertIsNone(create_backend(TranslationConfig(provider="google")))
        with self.assertLogs(level="ERROR"):
            self.assertIsNone(create_backend(TranslationConfig(provider="babelfish")))

    def test_deepl_language_codes(self) -> None:
        self.assertEqual(deepl_target_code("en"), "EN-US")
        self.assertEqual(deepl_target_code("pt"), "PT-PT")
        self.assertEqual(deepl_target_code("de"), "DE")
        self.assertEqual(deepl_target_code("en-GB"), "EN-GB")
        self.assertEqual(deepl_source_code("cs-CZ"), "CS")


if __name__ == "__main__":
    unittest.main()
