"""Command-line entry point: ``python -m tweetwall`` or ``tweetwall``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from dataclasses import replace
from typing import Any

from tweetwall.app.relay import Relay
from tweetwall.core.errors import TweetwallError
from tweetwall.infra.logger import get_logger
from tweetwall.utils.settings import RelayConfig, config_from_env

logger = logging.getLogger("tweetwall.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay a filtered tweet stream to websocket clients.")
    parser.add_argument("--host", help="Interface to listen on (default: all)")
    parser.add_argument("--port", type=int, help="Websocket port")
    parser.add_argument("--track", help="Stream filter, e.g. a hashtag")
    parser.add_argument("--buffer-size", type=int, help="Number of recent packets replayed to new clients")
    parser.add_argument("--backfill-count", type=int, help="Recent statuses fetched at startup")
    parser.add_argument("--no-backfill", action="store_true", help="Skip the startup backfill")
    parser.add_argument("--retry-delay", type=float, help="Seconds between upstream reconnect attempts")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def _merge_config(defaults: RelayConfig, args: argparse.Namespace) -> RelayConfig:
    return replace(
        defaults,
        host=args.host if args.host is not None else defaults.host,
        port=args.port if args.port is not None else defaults.port,
        track=args.track or defaults.track,
        buffer_capacity=args.buffer_size if args.buffer_size is not None else defaults.buffer_capacity,
        backfill_count=args.backfill_count if args.backfill_count is not None else defaults.backfill_count,
        backfill_enabled=False if args.no_backfill else defaults.backfill_enabled,
        retry_delay_s=args.retry_delay if args.retry_delay is not None else defaults.retry_delay_s,
        log_level=(args.log_level or defaults.log_level).upper(),
    )


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        "unhandled asynchronous error: %s",
        context.get("message", "unknown"),
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
    )


async def _main_async(config: RelayConfig) -> int:
    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_unhandled)

    stop_evt = asyncio.Event()

    def _stop(*_: object) -> None:
        logger.info("stop signal received")
        stop_evt.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _stop)

    try:
        relay = Relay(config)
        await relay.serve(stop_evt)
    except TweetwallError as exc:
        logger.error("relay failed: %s", exc)
        return 1
    except Exception:
        logger.exception("relay crashed")
        return 1
    logger.info("bye")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = _merge_config(config_from_env(), args).validate()
    except TweetwallError as exc:
        get_logger("tweetwall").error("invalid configuration: %s", exc)
        return 1
    get_logger("tweetwall", config.log_level)
    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(_main_async(config))
    return 130


if __name__ == "__main__":
    raise SystemExit(main())
