"""aiohttp WebSocket transport for the live subtitle pipeline."""

from __future__ import annotations

import asyncio
import errno
import json
import logging
from typing import Any, Optional, Tuple

from aiohttp import WSMsgType, web

from .asr import build_registry
from .config import Settings, load_settings
from .pipeline import EventSink, FatalSessionError, SessionOrchestrator
from .translate import TranslationService

ORCHESTRATOR_KEY = web.AppKey("orchestrator", SessionOrchestrator)


class WebSocketEventSink(EventSink):
    """Serialize outbound events as ``{"event": ..., "data": ...}`` JSON frames."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self._ws = ws

    async def send(self, event: str, data: Any = None) -> None:
        if self._ws.closed:
            logging.debug("Socket closed; dropping %s", event)
            return
        message = json.dumps({"event": event, "data": data}, ensure_ascii=False)
        try:
            await self._ws.send_str(message)
        except ConnectionResetError as exc:
            logging.debug("Client went away while sending %s: %s", event, exc)

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


def parse_message(raw: str) -> Tuple[str, Any]:
    """Split a text frame into ``(event, payload)``; raises ValueError if malformed."""

    message = json.loads(raw)
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        raise ValueError("message must be an object with a string 'event'")
    return message["event"], message.get("data")


async def handle_ws(request: web.Request) -> web.StreamResponse:
    orchestrator = request.app[ORCHESTRATOR_KEY]
    settings: Settings = orchestrator.settings
    ws = web.WebSocketResponse(
        heartbeat=settings.server.heartbeat_seconds,
        max_msg_size=settings.server.max_message_bytes,
    )
    await ws.prepare(request)
    sink = WebSocketEventSink(ws)
    session = orchestrator.open(sink)
    logging.info("Client origin: %s", request.headers.get("Origin"))
    try:
        async for msg in ws:
            try:
                if msg.type == WSMsgType.TEXT:
                    try:
                        event, payload = parse_message(msg.data)
                    except ValueError as exc:
                        logging.warning("Malformed message from %s: %s", session.id, exc)
                        await sink.send("transcription-error", {"error": f"Malformed message: {exc}"})
                        continue
                    await orchestrator.handle_event(session.id, event, payload)
                elif msg.type == WSMsgType.BINARY:
                    await orchestrator.handle_event(session.id, "audio-data", msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logging.warning("WebSocket error: %s", ws.exception())
            except FatalSessionError as exc:
                logging.error("%s", exc)
                break
    finally:
        await orchestrator.close(session.id)
        if not ws.closed:
            await ws.close()
    return ws


async def handle_health(request: web.Request) -> web.Response:
    orchestrator = request.app[ORCHESTRATOR_KEY]
    return web.json_response(
        {
            "status": "ok",
            "sessions": len(orchestrator),
            "provider": orchestrator.registry.active_provider,
            "translation": orchestrator.translator.enabled,
            "cache": orchestrator.translator.cache.stats(),
        }
    )


def create_app(orchestrator: SessionOrchestrator) -> web.Application:
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app.router.add_get("/ws", handle_ws)
    app.router.add_get("/health", handle_health)

    async def _on_shutdown(_app: web.Application) -> None:
        await orchestrator.shutdown()

    async def _on_cleanup(_app: web.Application) -> None:
        await orchestrator.registry.close()
        await orchestrator.translator.close()

    app.on_shutdown.append(_on_shutdown)
    app.on_cleanup.append(_on_cleanup)
    return app


def build_orchestrator(settings: Settings) -> SessionOrchestrator:
    registry = build_registry(settings.providers)
    translator = TranslationService.from_config(settings.translation)
    return SessionOrchestrator(registry, translator, settings=settings)


class CaptionServer:
    """Run the WebSocket endpoint until stopped."""

    def __init__(self, settings: Optional[Settings] = None, max_port_attempts: int = 5) -> None:
        self.settings = settings or load_settings()
        self.host = self.settings.server.host
        self.port = self.settings.server.port
        self._max_port_attempts = max(1, max_port_attempts)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        app = create_app(build_orchestrator(self.settings))
        self._runner = web.AppRunner(app)
        await self._runner.setup()

        attempts = 0
        last_error: Optional[Exception] = None
        base_port = self.port
        while attempts < self._max_port_attempts:
            desired_port = base_port + attempts
            try:
                self._site = web.TCPSite(self._runner, self.host, desired_port)
                await self._site.start()
            except OSError as exc:
                last_error = exc
                self._site = None
                if exc.errno == errno.EADDRINUSE:
                    logging.warning("Port %s already in use; trying next port.", desired_port)
                    attempts += 1
                    continue
                await self._runner.cleanup()
                self._runner = None
                raise
            else:
                self.port = desired_port
                logging.info("Live subtitle server at ws://%s:%d/ws", self.host, self.port)
                return

        await self._runner.cleanup()
        self._runner = None
        raise OSError("Live subtitle server could not bind to any available port.") from last_error

    async def stop(self) -> None:
        self._stopped.set()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self._site = None

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.stop()
