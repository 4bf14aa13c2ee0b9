"""Speech recognition backends for the live subtitle service."""

from .base import (
    ProviderDescriptor,
    ProviderError,
    RecognitionBackend,
    RecognitionResult,
    WordTiming,
)
from .deepgram_backend import DEEPGRAM_NOVA3, DeepgramBackend
from .google_backend import GOOGLE_SPEECH, GoogleSpeechBackend
from .registry import RecognitionProviderRegistry, UnknownProviderError, build_registry
from .whisper_backend import OPENAI_WHISPER, WhisperApiBackend

__all__ = [
    "ProviderDescriptor",
    "ProviderError",
    "RecognitionBackend",
    "RecognitionResult",
    "WordTiming",
    "DEEPGRAM_NOVA3",
    "DeepgramBackend",
    "GOOGLE_SPEECH",
    "GoogleSpeechBackend",
    "OPENAI_WHISPER",
    "WhisperApiBackend",
    "RecognitionProviderRegistry",
    "UnknownProviderError",
    "build_registry",
]
