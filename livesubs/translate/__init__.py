"""Machine translation with a shared cache."""

from .backends import (
    DeepLBackend,
    GoogleTranslateBackend,
    LibreTranslateBackend,
    TranslationBackend,
    TranslationError,
    create_backend,
)
from .cache import TranslationCache, TranslationCacheEntry
from .service import TranslationOutcome, TranslationService

__all__ = [
    "DeepLBackend",
    "GoogleTranslateBackend",
    "LibreTranslateBackend",
    "TranslationBackend",
    "TranslationCache",
    "TranslationCacheEntry",
    "TranslationError",
    "TranslationOutcome",
    "TranslationService",
    "create_backend",
]
