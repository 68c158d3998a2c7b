"""CLI entrypoint for the pipeline runtime, the API server and the operator commands."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import List, Optional

from pydantic import ValidationError

from config import get_settings
from core import PipelineConfig
from utils.exceptions import ConfigurationError, ShotAutoError
from utils.logger import setup_logger
from webapp.runtime import get_runtime, get_service


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _merged_config(args: argparse.Namespace) -> PipelineConfig:
    """Stored config with the flags that were given applied on top; '' clears a field."""
    current = get_service().get_config().model_dump()
    for field in ("youtube_api_key", "telegram_bot_token", "telegram_chat_id", "ollama_endpoint", "poll_interval_secs"):
        value = getattr(args, field, None)
        if value is not None:
            current[field] = value
    try:
        return PipelineConfig(**current)
    except ValidationError as exc:
        raise ConfigurationError("invalid config value", {"errors": exc.errors(include_url=False)}) from exc


async def _run_pipeline(start: bool) -> None:
    runtime = get_runtime()
    if start:
        runtime.controller.start()
    task = runtime.start_background()
    try:
        await task
    finally:
        await runtime.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ShotAuto trend-to-short pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run collector, workers, notifier and watchdog")
    run.add_argument("--start", action="store_true", help="start in the running state")

    serve = sub.add_parser("serve", help="run the HTTP API with the pipeline attached")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("stats")
    sub.add_parser("stage-stats")
    sub.add_parser("show-config")

    save = sub.add_parser("save-config")
    save.add_argument("--youtube-api-key", dest="youtube_api_key")
    save.add_argument("--telegram-bot-token", dest="telegram_bot_token")
    save.add_argument("--telegram-chat-id", dest="telegram_chat_id")
    save.add_argument("--ollama-endpoint", dest="ollama_endpoint")
    save.add_argument("--poll-interval-secs", dest="poll_interval_secs", type=int)

    probe = sub.add_parser("probe", help="check a credential or endpoint")
    probe.add_argument("target", choices=["trend-source", "messaging-bot", "inference-endpoint"])
    probe.add_argument("--value", default=None, help="key/token/endpoint to test (default: stored config)")

    sub.add_parser("work-once", help="process at most one pending job")
    sub.add_parser("poll-once", help="poll the trend source once")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    general = get_settings().general
    setup_logger(level=general.log_level, log_file=general.log_file)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("webapp.app:app", host=args.host, port=int(args.port))
        return 0

    if args.command == "run":
        try:
            asyncio.run(_run_pipeline(bool(args.start)))
        except KeyboardInterrupt:
            pass
        return 0

    service = get_service()

    if args.command == "stats":
        _print(service.get_stats().model_dump())
        return 0

    if args.command == "stage-stats":
        _print([row.model_dump(mode="json") for row in service.stage_summary()])
        return 0

    if args.command == "show-config":
        _print(service.get_config().model_dump())
        return 0

    if args.command == "save-config":
        try:
            config = _merged_config(args)
        except ConfigurationError as exc:
            _print({"error": str(exc)})
            return 1
        service.save_config(config)
        _print(service.get_config().model_dump())
        return 0

    if args.command == "probe":
        probes = {
            "trend-source": service.test_trend_source,
            "messaging-bot": service.test_messaging_bot,
            "inference-endpoint": service.test_inference_endpoint,
        }
        ok = asyncio.run(probes[args.target](args.value))
        _print({"target": args.target, "ok": ok})
        return 0 if ok else 1

    runtime = get_runtime()

    if args.command == "work-once":
        outcome = asyncio.run(runtime.workers.run_once(0))
        _print(outcome.model_dump(mode="json") if outcome else {"idle": True})
        return 0

    if args.command == "poll-once":
        try:
            result = asyncio.run(runtime.collector.poll())
        except ShotAutoError as exc:
            _print({"error": str(exc)})
            return 1
        _print(result.model_dump())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
