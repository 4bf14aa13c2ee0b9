"""Configuration loading utilities for the live subtitle service."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised when a requested configuration change is invalid."""


class AudioConfig(BaseModel):
    """Format of the PCM audio clients stream to the server."""

    sample_rate: int = Field(default=16_000, ge=8_000, le=48_000)
    channels: int = Field(default=1, ge=1, le=1)
    silence_amplitude: int = Field(
        default=100,
        ge=0,
        le=32_767,
        description="Segments whose peak absolute sample never exceeds this are treated as silence.",
    )


class SegmentConfig(BaseModel):
    """Buffering thresholds deciding when a segment goes to recognition."""

    dispatch_bytes: int = Field(default=32_000, ge=2, le=16_000 * 2 * 30)
    min_interval_seconds: float = Field(default=1.0, ge=0.0, le=30.0)
    keep_tail_bytes: int = Field(default=16_000, ge=0, le=16_000 * 2 * 5)


class DedupConfig(BaseModel):
    interim_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    final_ratio: float = Field(default=0.1, ge=0.0, le=1.0)


class ProviderScope(str, Enum):
    """Where a `set-stt-provider` choice is stored."""

    SESSION = "session"
    GLOBAL = "global"


class GoogleSpeechConfig(BaseModel):
    api_key: Optional[str] = None
    model: str = Field(default="latest_long", min_length=1)
    url: str = Field(default="https://speech.googleapis.com/v1/speech:recognize", min_length=10)


class WhisperApiConfig(BaseModel):
    api_key: Optional[str] = None
    model: str = Field(default="whisper-1", min_length=1)
    base_url: str = Field(default="https://api.openai.com/v1", min_length=10)
    temperature: float = Field(default=0.1, ge=0.0, le=1.0)


class DeepgramConfig(BaseModel):
    api_key: Optional[str] = None
    model: str = Field(default="nova-3", min_length=1)
    base_url: str = Field(default="https://api.deepgram.com/v1", min_length=10)


class ProviderConfig(BaseModel):
    """Speech recognition provider selection."""

    default: str = Field(default="google-speech", min_length=1)
    scope: ProviderScope = ProviderScope.SESSION
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=120.0)
    google: GoogleSpeechConfig = GoogleSpeechConfig()
    whisper: WhisperApiConfig = WhisperApiConfig()
    deepgram: DeepgramConfig = DeepgramConfig()


class TranslationConfig(BaseModel):
    """Configuration for machine translation and its cache."""

    provider: str = Field(default="deepl")
    timeout_seconds: float = Field(default=8.0, ge=0.1, le=60.0)
    cache_max_size: int = Field(default=1000, ge=1, le=1_000_000)
    cache_ttl_seconds: float = Field(default=24 * 60 * 60, ge=0.0)
    deepl_api_key: Optional[str] = None
    deepl_url: Optional[str] = Field(
        default=None,
        description="Override DeepL endpoint; free-tier keys (':fx') default to api-free.deepl.com.",
    )
    libre_url: str = Field(default="https://libretranslate.de", min_length=10)
    libre_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    google_model: Optional[str] = None


class EnrichmentConfig(BaseModel):
    enabled: bool = True
    style: str = Field(default="formal")


class SessionDefaults(BaseModel):
    """Language defaults applied to every new connection."""

    speech_language: str = Field(default="cs-CZ", min_length=2)
    translation_from: str = Field(default="cs", min_length=2)
    translation_to: str = Field(default="en", min_length=2)


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65_535)
    heartbeat_seconds: float = Field(default=20.0, gt=0.0)
    max_message_bytes: int = Field(default=4 * 1024 * 1024, ge=1024)


class Settings(BaseModel):
    """Aggregated settings for the streaming pipeline."""

    audio: AudioConfig = AudioConfig()
    segment: SegmentConfig = SegmentConfig()
    dedup: DedupConfig = DedupConfig()
    providers: ProviderConfig = ProviderConfig()
    translation: TranslationConfig = TranslationConfig()
    enrichment: EnrichmentConfig = EnrichmentConfig()
    session: SessionDefaults = SessionDefaults()
    server: ServerConfig = ServerConfig()


def _flag(env, name: str, default: str) -> bool:
    return env.get(name, default).strip().lower() in _TRUTHY


def settings_from_env(env) -> Settings:
    """Build settings from a mapping of environment variables."""

    try:
        sample_rate = int(env.get("AUDIO_SAMPLE_RATE", "16000"))
        # One second of mono int16 audio unless overridden.
        default_dispatch = str(sample_rate * 2)
        default_tail = str(sample_rate)

        providers = ProviderConfig(
            default=env.get("STT_PROVIDER", "google-speech").strip().lower(),
            scope=ProviderScope(env.get("PROVIDER_SCOPE", "session").strip().lower()),
            timeout_seconds=float(env.get("STT_TIMEOUT_SECONDS", "30")),
            google=GoogleSpeechConfig(
                api_key=env.get("GOOGLE_API_KEY") or None,
                model=env.get("GOOGLE_SPEECH_MODEL", "latest_long"),
            ),
            whisper=WhisperApiConfig(
                api_key=env.get("OPENAI_API_KEY") or None,
                model=env.get("WHISPER_MODEL", "whisper-1"),
                base_url=env.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            ),
            deepgram=DeepgramConfig(
                api_key=env.get("DEEPGRAM_API_KEY") or None,
                model=env.get("DEEPGRAM_MODEL", "nova-3"),
            ),
        )

        translation = TranslationConfig(
            provider=env.get("TRANSLATION_PROVIDER", "deepl").strip().lower(),
            timeout_seconds=float(env.get("TRANSLATION_TIMEOUT_SECONDS", "8.0")),
            cache_max_size=int(env.get("TRANSLATION_CACHE_MAX_SIZE", "1000")),
            cache_ttl_seconds=float(env.get("TRANSLATION_CACHE_TTL_SECONDS", str(24 * 60 * 60))),
            deepl_api_key=env.get("DEEPL_API_KEY") or None,
            deepl_url=env.get("DEEPL_API_URL") or None,
            libre_url=env.get("LIBRETRANSLATE_URL", "https://libretranslate.de"),
            libre_api_key=env.get("LIBRETRANSLATE_API_KEY") or None,
            google_api_key=env.get("GOOGLE_TRANSLATE_API_KEY") or None,
            google_model=env.get("GOOGLE_TRANSLATE_MODEL") or None,
        )

        return Settings(
            audio=AudioConfig(
                sample_rate=sample_rate,
                silence_amplitude=int(env.get("SILENCE_AMPLITUDE", "100")),
            ),
            segment=SegmentConfig(
                dispatch_bytes=int(env.get("SEGMENT_DISPATCH_BYTES", default_dispatch)),
                min_interval_seconds=float(env.get("SEGMENT_MIN_INTERVAL_SECONDS", "1.0")),
                keep_tail_bytes=int(env.get("SEGMENT_KEEP_TAIL_BYTES", default_tail)),
            ),
            dedup=DedupConfig(
                interim_ratio=float(env.get("DEDUP_INTERIM_RATIO", "0.2")),
                final_ratio=float(env.get("DEDUP_FINAL_RATIO", "0.1")),
            ),
            providers=providers,
            translation=translation,
            enrichment=EnrichmentConfig(
                enabled=_flag(env, "PUNCTUATION_ENABLED", "true"),
                style=env.get("PUNCTUATION_STYLE", "formal").strip().lower(),
            ),
            session=SessionDefaults(
                speech_language=env.get("DEFAULT_SPEECH_LANGUAGE", "cs-CZ"),
                translation_from=env.get("DEFAULT_TRANSLATION_FROM", "cs"),
                translation_to=env.get("DEFAULT_TRANSLATION_TO", "en"),
            ),
            server=ServerConfig(
                host=env.get("SERVER_HOST", "127.0.0.1"),
                port=int(env.get("SERVER_PORT", "8765")),
                heartbeat_seconds=float(env.get("SERVER_HEARTBEAT_SECONDS", "20")),
            ),
        )
    except ValidationError as exc:
        raise RuntimeError(f"Configuration invalid: {exc}") from exc
    except ValueError as exc:
        raise RuntimeError(f"Configuration value malformed: {exc}") from exc


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load settings from environment variables and .env files."""

    load_dotenv()
    return settings_from_env(os.environ)
