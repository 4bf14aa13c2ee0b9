"""Uniform access to interchangeable speech recognition providers."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from ..audio import AudioSegment
from ..config import ConfigurationError, ProviderConfig
from .base import ProviderDescriptor, ProviderError, RecognitionBackend, RecognitionResult
from .deepgram_backend import DeepgramBackend
from .google_backend import GoogleSpeechBackend
from .whisper_backend import WhisperApiBackend


class UnknownProviderError(ConfigurationError):
    """Raised when a provider id is not registered."""

    def __init__(self, provider: object, available: Iterable[str]) -> None:
        self.provider = provider
        self.available = list(available)
        super().__init__(f"Unknown STT provider: {provider}")


class RecognitionProviderRegistry:
    """Dispatch recognition calls to the selected backend.

    The registry owns the process-wide default provider. Callers may pass an
    explicit ``provider_id`` (for per-session selection) instead of relying on
    that default. Backend failures never propagate out of
    :meth:`transcribe_buffer`; they come back as an empty result carrying the
    error text.
    """

    def __init__(
        self,
        backends: Iterable[RecognitionBackend],
        default: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self._backends: Dict[str, RecognitionBackend] = {}
        for backend in backends:
            self._backends[backend.descriptor.id] = backend
        if not self._backends:
            raise ValueError("At least one recognition backend is required.")
        self._timeout = timeout
        first = next(iter(self._backends))
        self._active = self.resolve(default) if default else first

    @property
    def active_provider(self) -> str:
        return self._active

    def provider_ids(self) -> List[str]:
        return list(self._backends)

    def descriptors(self) -> List[ProviderDescriptor]:
        return [backend.descriptor for backend in self._backends.values()]

    def descriptor(self, provider_id: Optional[str] = None) -> ProviderDescriptor:
        return self._backends[self.resolve(provider_id or self._active)].descriptor

    def resolve(self, provider_id: object) -> str:
        """Return the canonical id, accepting ``GOOGLE_SPEECH`` style variants."""

        if not isinstance(provider_id, str) or not provider_id.strip():
            raise UnknownProviderError(provider_id, self._backends)
        candidate = provider_id.strip().lower().replace("_", "-")
        if candidate not in self._backends:
            raise UnknownProviderError(provider_id, self._backends)
        return candidate

    def set_provider(self, provider_id: str) -> str:
        resolved = self.resolve(provider_id)
        self._active = resolved
        logging.info("STT provider switched to: %s", self._backends[resolved].descriptor.name)
        return resolved

    def supported_languages(self, provider_id: Optional[str] = None) -> List[str]:
        return self._backends[self.resolve(provider_id or self._active)].supported_languages()

    async def transcribe_buffer(
        self,
        segment: AudioSegment,
        language: str,
        provider_id: Optional[str] = None,
    ) -> RecognitionResult:
        target = provider_id or self._active
        backend = self._backends.get(target)
        if backend is None:
            return RecognitionResult.failure(
                f"Unknown STT provider: {target}", language=language, provider=target,
                is_final=segment.is_final,
            )
        logging.debug("Using %s for %d bytes of audio", backend.descriptor.name, len(segment))
        try:
            result = await asyncio.wait_for(
                backend.transcribe(segment, language), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logging.error("STT transcription with %s timed out after %.1fs", target, self._timeout)
            return RecognitionResult.failure(
                "Recognition timed out", language=language, provider=target, is_final=segment.is_final
            )
        except ProviderError as exc:
            logging.error("STT transcription failed with %s: %s", target, exc)
            return RecognitionResult.failure(
                str(exc), language=language, provider=target, is_final=segment.is_final
            )
        except Exception as exc:  # noqa: BLE001
            logging.exception("STT transcription failed with %s: %s", target, exc)
            return RecognitionResult.failure(
                str(exc) or exc.__class__.__name__,
                language=language,
                provider=target,
                is_final=segment.is_final,
            )
        if result.provider is None:
            result.provider = target
        return result

    async def test_connection(self, provider_id: Optional[str] = None) -> bool:
        target = self.resolve(provider_id or self._active)
        backend = self._backends[target]
        logging.info("Testing %s connection...", backend.descriptor.name)
        try:
            return bool(await asyncio.wait_for(backend.test_connection(), timeout=self._timeout))
        except Exception as exc:  # noqa: BLE001
            logging.error("Connection test failed for %s: %s", target, exc)
            return False

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()


def build_registry(config: ProviderConfig) -> RecognitionProviderRegistry:
    backends: List[RecognitionBackend] = [
        GoogleSpeechBackend(config.google, timeout=config.timeout_seconds),
        WhisperApiBackend(config.whisper, timeout=config.timeout_seconds),
        DeepgramBackend(config.deepgram, timeout=config.timeout_seconds),
    ]
    registry = RecognitionProviderRegistry(
        backends, default=config.default, timeout=config.timeout_seconds
    )
    for backend in backends:
        if not backend.configured:
            logging.warning(
                "%s credentials not set; calls to %s will fail.",
                backend.descriptor.name,
                backend.descriptor.id,
            )
    return registry
