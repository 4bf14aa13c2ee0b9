"""Command line interface for the live subtitle server."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .asr import build_registry
from .config import Settings, load_settings
from .replay import replay_wav
from .server import CaptionServer
from .translate import TranslationService

_REDACTED = "***redacted***"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def redacted_settings(settings: Settings) -> Dict[str, Any]:
    dump = settings.model_dump(mode="json")
    for name in ("google", "whisper", "deepgram"):
        if dump["providers"][name].get("api_key"):
            dump["providers"][name]["api_key"] = _REDACTED
    for key in ("deepl_api_key", "libre_api_key", "google_api_key"):
        if dump["translation"].get(key):
            dump["translation"][key] = _REDACTED
    return dump


def print_settings() -> None:
    print(json.dumps(redacted_settings(load_settings()), indent=2, ensure_ascii=False))


async def _check_providers(settings: Settings) -> Dict[str, bool]:
    registry = build_registry(settings.providers)
    translator = TranslationService.from_config(settings.translation)
    results: Dict[str, bool] = {}
    try:
        for provider_id in registry.provider_ids():
            results[provider_id] = await registry.test_connection(provider_id)
        results[f"translation:{settings.translation.provider}"] = await translator.test_connection()
    finally:
        await registry.close()
        await translator.close()
    return results


def list_providers(check: bool = False) -> bool:
    settings = load_settings()
    registry = build_registry(settings.providers)
    for descriptor in registry.descriptors():
        marker = "*" if descriptor.id == registry.active_provider else " "
        print(f"{marker} {descriptor.id:<18} {descriptor.name}  - {descriptor.description}")
    if not check:
        return True

    results = asyncio.run(_check_providers(settings))
    print()
    for name, ok in results.items():
        print(f"  {name:<28} {'OK' if ok else 'FAILED'}")
    return all(results.values())


def run_server(host: Optional[str], port: Optional[int]) -> None:
    settings = load_settings()
    if host or port:
        server_config = settings.server.model_copy(
            update={k: v for k, v in (("host", host), ("port", port)) if v is not None}
        )
        settings = settings.model_copy(update={"server": server_config})
    server = CaptionServer(settings)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logging.info("Server interrupted; shutting down.")


def run_replay(args: argparse.Namespace) -> bool:
    settings = load_settings()
    url = args.url or f"ws://{settings.server.host}:{settings.server.port}/ws"
    languages: Dict[str, str] = {}
    if args.speech_language:
        languages["speechLanguage"] = args.speech_language
    if args.translate_from:
        languages["translationFrom"] = args.translate_from
    if args.translate_to:
        languages["translationTo"] = args.translate_to
    events = asyncio.run(
        replay_wav(
            url,
            Path(args.wav),
            chunk_ms=args.chunk_ms,
            realtime=not args.fast,
            languages=languages or None,
            provider=args.provider,
            timeout=args.timeout,
        )
    )
    finals = [e for e in events if e.get("event") == "transcription-result" and e["data"].get("isFinal")]
    logging.info("Replay finished: %d events, %d final results", len(events), len(finals))
    return any(e.get("event") == "transcription-stopped" for e in events)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live speech transcription and translation over WebSocket."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the WebSocket server (default).")
    serve.add_argument("--host", help="Override SERVER_HOST.")
    serve.add_argument("--port", type=int, help="Override SERVER_PORT.")

    providers = sub.add_parser("providers", help="List speech recognition providers.")
    providers.add_argument(
        "--check", action="store_true", help="Run a connection test against each provider."
    )

    sub.add_parser("settings", help="Print loaded configuration and exit.")

    replay = sub.add_parser("replay", help="Stream a 16 kHz mono WAV file to a running server.")
    replay.add_argument("wav", help="Path to a 16-bit PCM mono WAV file.")
    replay.add_argument("--url", help="WebSocket URL (default: ws://SERVER_HOST:SERVER_PORT/ws).")
    replay.add_argument("--chunk-ms", type=int, default=250, help="Frame size in milliseconds.")
    replay.add_argument("--fast", action="store_true", help="Send frames without real-time pacing.")
    replay.add_argument("--speech-language", help="Speech language, e.g. cs-CZ.")
    replay.add_argument("--translate-from", help="Translation source language, e.g. cs.")
    replay.add_argument("--translate-to", help="Translation target language, e.g. en.")
    replay.add_argument("--provider", help="STT provider id to select before starting.")
    replay.add_argument(
        "--timeout", type=float, default=60.0, help="Seconds to wait for transcription-stopped."
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "settings":
            print_settings()
            return 0
        if args.command == "providers":
            return 0 if list_providers(args.check) else 1
        if args.command == "replay":
            return 0 if run_replay(args) else 1
        run_server(getattr(args, "host", None), getattr(args, "port", None))
    except RuntimeError as exc:
        logging.error("%s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
