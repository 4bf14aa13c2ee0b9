"""Per-connection orchestration of the audio -> transcript -> translation pipeline."""

from __future__ import annotations

import abc
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .asr import RecognitionProviderRegistry, UnknownProviderError
from .audio import AudioSegment, DecodeError, decode, is_silent
from .buffering import SegmentAccumulator
from .config import ProviderScope, Settings
from .dedup import ResultDeduplicator
from .enrich import STYLES, TextEnricher
from .languages import (
    is_valid_speech_language,
    is_valid_translation_language,
    language_display,
)
from .translate import TranslationService

DEFAULT_CONFIDENCE = 0.9
DEFAULT_SPEAKER = "Speaker"


class FatalSessionError(Exception):
    """Unexpected internal fault; the only error that terminates a session."""


class EventSink(abc.ABC):
    """Outbound side of one client connection."""

    @abc.abstractmethod
    async def send(self, event: str, data: Any = None) -> None:
        """Deliver one event to the client."""

    async def close(self) -> None:
        return None


class SessionState(str, Enum):
    IDLE = "idle"
    TRANSCRIBING = "transcribing"


@dataclass
class Session:
    """Mutable state of one connection, owned by the orchestrator."""

    id: str
    sink: EventSink
    accumulator: SegmentAccumulator
    speech_language: str = "cs-CZ"
    translation_from: str = "cs"
    translation_to: str = "en"
    punctuation_enabled: bool = True
    punctuation_style: str = "formal"
    provider_id: Optional[str] = None
    state: SessionState = SessionState.IDLE
    last_transcript: str = ""
    last_raw_transcript: str = ""
    last_translation: str = ""
    inflight: Optional["asyncio.Task[None]"] = field(default=None, repr=False)
    closed: bool = False

    @property
    def transcribing(self) -> bool:
        return self.state is SessionState.TRANSCRIBING

    @property
    def last_dispatch(self) -> float:
        return self.accumulator.last_dispatch

    def reset(self, now: float) -> None:
        self.accumulator.reset(now)
        self.last_transcript = ""
        self.last_raw_transcript = ""
        self.last_translation = ""

    def language_config(self) -> Dict[str, str]:
        return {
            "speechLanguage": self.speech_language,
            "translationFrom": self.translation_from,
            "translationTo": self.translation_to,
        }


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionOrchestrator:
    """Route connection events through the per-session state machine.

    ``idle -> transcribing -> idle`` per session, terminal on disconnect.
    Audio frames only accumulate; when a segment is due it is handed to a
    background task so newer frames keep arriving while recognition is in
    flight. At most one such task exists per session, which keeps that
    session's results in order.
    """

    def __init__(
        self,
        registry: RecognitionProviderRegistry,
        translator: TranslationService,
        settings: Optional[Settings] = None,
        enricher: Optional[TextEnricher] = None,
        deduplicator: Optional[ResultDeduplicator] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.registry = registry
        self.translator = translator
        self.enricher = enricher or TextEnricher(self.settings.enrichment.style)
        self.deduplicator = deduplicator or ResultDeduplicator(self.settings.dedup)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._orphans: Set["asyncio.Task[None]"] = set()
        self._handlers: Dict[str, Callable[[Session, Any], Awaitable[None]]] = {
            "start-transcription": self._on_start,
            "stop-transcription": self._on_stop,
            "audio-data": self._on_audio,
            "set-languages": self._on_set_languages,
            "set-stt-provider": self._on_set_provider,
            "set-punctuation-preferences": self._on_set_punctuation,
            "get-stt-providers": self._on_get_providers,
        }

    # -- session lifecycle -------------------------------------------------

    def open(self, sink: EventSink, connection_id: Optional[str] = None) -> Session:
        session_id = connection_id or uuid.uuid4().hex
        defaults = self.settings.session
        session = Session(
            id=session_id,
            sink=sink,
            accumulator=SegmentAccumulator(
                self.settings.segment,
                sample_rate=self.settings.audio.sample_rate,
                now=self._clock(),
            ),
            speech_language=defaults.speech_language,
            translation_from=defaults.translation_from,
            translation_to=defaults.translation_to,
            punctuation_enabled=self.settings.enrichment.enabled,
            punctuation_style=self.enricher.resolve_style(self.settings.enrichment.style),
        )
        self._sessions[session_id] = session
        logging.info("Client connected: %s", session_id)
        return session

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self, connection_id: str) -> None:
        """Release a disconnected session; in-flight results are dropped."""

        session = self._sessions.pop(connection_id, None)
        if session is None:
            return
        session.closed = True
        session.state = SessionState.IDLE
        session.accumulator.reset(self._clock())
        task = session.inflight
        session.inflight = None
        if task is not None and not task.done():
            self._orphans.add(task)
            task.add_done_callback(self._orphans.discard)
        logging.info("Client disconnected: %s", connection_id)

    async def shutdown(self) -> None:
        """Cancel in-flight runs and close every client connection."""

        sessions = list(self._sessions.values())
        tasks = [s.inflight for s in sessions if s.inflight is not None]
        tasks.extend(self._orphans)
        for session in sessions:
            await self.close(session.id)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._orphans.clear()

        if sessions:
            results = await asyncio.gather(
                *(session.sink.close() for session in sessions), return_exceptions=True
            )
            for session, result in zip(sessions, results):
                if isinstance(result, Exception):
                    logging.warning("Closing connection %s failed: %s", session.id, result)

    async def wait_idle(self, connection_id: str) -> None:
        session = self._sessions.get(connection_id)
        if session is not None:
            await self._await_inflight(session)

    # -- dispatch ----------------------------------------------------------

    async def handle_event(self, connection_id: str, event: str, payload: Any = None) -> None:
        session = self._sessions.get(connection_id)
        if session is None:
            logging.warning("Event %s for unknown connection %s ignored", event, connection_id)
            return
        handler = self._handlers.get(event)
        if handler is None:
            logging.warning("Unknown event %r from %s ignored", event, connection_id)
            return
        try:
            await handler(session, payload)
        except Exception as exc:  # noqa: BLE001
            await self._fail_session(session, exc)
            raise FatalSessionError(f"Session {connection_id} terminated: {exc}") from exc

    async def _emit(self, session: Session, event: str, data: Any = None) -> None:
        if session.closed:
            logging.debug("Dropping %s for closed session %s", event, session.id)
            return
        await session.sink.send(event, data)

    async def _fail_session(self, session: Session, exc: BaseException) -> None:
        logging.error("Fatal error in session %s: %s", session.id, exc, exc_info=exc)
        try:
            await self._emit(session, "transcription-error", {"error": f"Internal error: {exc}"})
        finally:
            await self.close(session.id)
            await session.sink.close()

    async def _await_inflight(self, session: Session) -> None:
        task = session.inflight
        if task is None:
            return
        if not task.done():
            await asyncio.wait({task})
        if session.inflight is task:
            session.inflight = None

    # -- event handlers ----------------------------------------------------

    async def _on_start(self, session: Session, _payload: Any) -> None:
        await self._await_inflight(session)
        session.reset(self._clock())
        session.state = SessionState.TRANSCRIBING
        provider = session.provider_id or self.registry.active_provider
        await self._emit(
            session,
            "transcription-started",
            {**session.language_config(), "provider": provider},
        )
        logging.info(
            "Transcription started for %s (%s, %s->%s, provider=%s)",
            session.id,
            session.speech_language,
            session.translation_from,
            session.translation_to,
            provider,
        )

    async def _on_audio(self, session: Session, payload: Any) -> None:
        if not session.transcribing:
            logging.debug("Ignoring audio data from %s - client not transcribing", session.id)
            return
        try:
            pcm = decode(payload)
        except DecodeError as exc:
            logging.warning("Dropping malformed audio frame from %s: %s", session.id, exc)
            return
        accumulator = session.accumulator
        accumulator.append(pcm)

        if session.inflight is not None and not session.inflight.done():
            return
        now = self._clock()
        if not accumulator.should_dispatch(now):
            return
        if is_silent(accumulator.pending, self.settings.audio.silence_amplitude):
            logging.debug("Audio from %s is silence, skipping transcription", session.id)
            accumulator.discard(now)
            return
        segment = accumulator.take_segment(now)
        session.inflight = asyncio.create_task(
            self._guarded_run(session, segment), name=f"pipeline-{session.id}"
        )

    async def _on_stop(self, session: Session, _payload: Any) -> None:
        session.state = SessionState.IDLE
        await self._await_inflight(session)
        if session.closed:
            return
        accumulator = session.accumulator
        now = self._clock()
        if len(accumulator):
            if is_silent(accumulator.pending, self.settings.audio.silence_amplitude):
                logging.debug("Final audio from %s is silence, nothing to flush", session.id)
            else:
                logging.info("Processing final audio buffer: %d bytes", len(accumulator))
                await self._run_pipeline(session, accumulator.take_segment(now, final=True))
        accumulator.reset(now)
        await self._emit(session, "transcription-stopped", {})
        logging.info("Transcription stopped for client: %s", session.id)

    async def _on_set_languages(self, session: Session, payload: Any) -> None:
        config = payload if isinstance(payload, dict) else {}
        rejected: Dict[str, Any] = {}

        speech = config.get("speechLanguage")
        if speech is not None:
            if is_valid_speech_language(speech):
                session.speech_language = speech
            else:
                rejected["speechLanguage"] = speech
        for key, attr in (("translationFrom", "translation_from"), ("translationTo", "translation_to")):
            value = config.get(key)
            if value is None:
                continue
            if is_valid_translation_language(value):
                setattr(session, attr, value)
            else:
                rejected[key] = value
        if rejected:
            logging.warning("Rejected language settings from %s: %s", session.id, rejected)

        await self._emit(
            session,
            "languages-updated",
            {
                **session.language_config(),
                "speechDisplay": language_display(session.speech_language, "speech"),
                "translationDisplay": (
                    f"{language_display(session.translation_from, 'translation')} → "
                    f"{language_display(session.translation_to, 'translation')}"
                ),
                "rejected": rejected,
            },
        )

    async def _on_set_provider(self, session: Session, payload: Any) -> None:
        requested = payload.get("provider") if isinstance(payload, dict) else payload
        try:
            provider = self.registry.resolve(requested)
        except UnknownProviderError as exc:
            logging.warning("STT provider switch for %s failed: %s", session.id, exc)
            await self._emit(
                session,
                "stt-provider-error",
                {"error": str(exc), "availableProviders": exc.available},
            )
            return

        if self.settings.providers.scope is ProviderScope.GLOBAL:
            self.registry.set_provider(provider)
            session.provider_id = None
        else:
            session.provider_id = provider
        await self._emit(
            session,
            "stt-provider-updated",
            {
                "provider": provider,
                "config": self.registry.descriptor(provider).as_dict(),
                "supportedLanguages": self.registry.supported_languages(provider),
            },
        )

    async def _on_set_punctuation(self, session: Session, payload: Any) -> None:
        config = payload if isinstance(payload, dict) else {}
        enabled = config.get("enabled")
        if isinstance(enabled, bool):
            session.punctuation_enabled = enabled
        style = config.get("style")
        if isinstance(style, str) and style in STYLES:
            session.punctuation_style = style
        elif style is not None:
            logging.warning("Ignoring unknown punctuation style %r from %s", style, session.id)
        await self._emit(
            session,
            "punctuation-preferences-updated",
            {"enabled": session.punctuation_enabled, "style": session.punctuation_style},
        )

    async def _on_get_providers(self, session: Session, _payload: Any) -> None:
        await self._emit(
            session,
            "stt-providers",
            {
                "active": session.provider_id or self.registry.active_provider,
                "providers": [descriptor.as_dict() for descriptor in self.registry.descriptors()],
            },
        )

    # -- pipeline ----------------------------------------------------------

    async def _guarded_run(self, session: Session, segment: AudioSegment) -> None:
        try:
            await self._run_pipeline(session, segment)
        except Exception as exc:  # noqa: BLE001
            await self._fail_session(session, exc)

    async def _run_pipeline(self, session: Session, segment: AudioSegment) -> None:
        final = segment.is_final
        provider = session.provider_id or self.registry.active_provider
        result = await self.registry.transcribe_buffer(
            segment, session.speech_language, provider_id=provider
        )
        if session.closed:
            logging.debug("Session %s closed; discarding recognition result", session.id)
            return
        if result.failed:
            logging.warning("Recognition failed for %s: %s", session.id, result.error)
            return

        raw = result.transcript.strip()
        if not raw:
            logging.debug("No transcript detected in audio from %s", session.id)
            return
        if not self.deduplicator.should_emit(raw, session.last_raw_transcript, final=final):
            logging.info("Transcript too similar to last one, skipping: %s", raw)
            return

        transcript = raw
        punctuated = False
        if session.punctuation_enabled:
            enriched = self.enricher.enrich(raw, session.translation_from, session.punctuation_style)
            if enriched.applied:
                transcript = enriched.text
                punctuated = True

        outcome = await self.translator.translate(
            transcript, session.translation_from, session.translation_to
        )
        if session.closed:
            logging.debug("Session %s closed; discarding translation", session.id)
            return
        translation = outcome.text
        if outcome.failed:
            logging.warning("Translation failed, using original text: %s", outcome.error)
        elif session.punctuation_enabled and translation and translation != transcript:
            enriched = self.enricher.enrich(
                translation, session.translation_to, session.punctuation_style
            )
            if enriched.applied:
                translation = enriched.text

        if not final and session.last_translation and translation == session.last_translation:
            logging.info("Translation unchanged, skipping: %s", translation)
        else:
            await self._emit(
                session,
                "transcription-result",
                {
                    "transcript": transcript,
                    "translation": translation,
                    "confidence": result.confidence or DEFAULT_CONFIDENCE,
                    "isFinal": final,
                    "timestamp": _timestamp(),
                    "speaker": result.speaker or DEFAULT_SPEAKER,
                    "punctuated": punctuated,
                    "provider": result.provider or provider,
                    "translationFailed": outcome.failed,
                    "fromCache": outcome.from_cache,
                },
            )

        session.last_raw_transcript = raw
        session.last_transcript = transcript
        session.last_translation = translation
