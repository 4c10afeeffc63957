"""Entry point: python -m sselink URL

Subscribes to an event stream and prints every event as a JSON line on stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from .client import ANY_EVENT, EventSource
from .config import EventSourceConfig
from .logging_config import setup_logging
from .protocol.assembler import Event

log = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconnecting Server-Sent Events client")
    parser.add_argument("url", help="Event stream URL")
    parser.add_argument(
        "-H", "--header", action="append", default=[], metavar="NAME:VALUE",
        help="Extra request header (repeatable)",
    )
    parser.add_argument("--last-event-id", default=None, help="Resume from this event id")
    parser.add_argument("--initial-reconnect-delay", type=float, default=None, help="Seconds (default: 2)")
    parser.add_argument("--maximum-reconnect-delay", type=float, default=None, help="Seconds (default: 30)")
    parser.add_argument("--heartbeat-timeout", type=float, default=None, help="Seconds (default: 30)")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument("--log-dir", default=None, help="Also write JSON logs to this directory")
    return parser


def parse_headers(values: list[str]) -> dict[str, str]:
    """Turn ``NAME:VALUE`` strings into a header dict."""
    headers: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"invalid header {item!r}, expected NAME:VALUE")
        headers[name.strip()] = value.strip()
    return headers


def config_from_args(args: argparse.Namespace) -> EventSourceConfig:
    overrides = {
        "initial_reconnect_delay": args.initial_reconnect_delay,
        "maximum_reconnect_delay": args.maximum_reconnect_delay,
        "heartbeat_timeout": args.heartbeat_timeout,
        "log_level": args.log_level,
        "log_dir": args.log_dir,
    }
    return EventSourceConfig(**{k: v for k, v in overrides.items() if v is not None})


def format_event(event: Event) -> str:
    return json.dumps(event.to_dict(), ensure_ascii=False)


async def _follow(source: EventSource) -> None:
    def print_event(event: Event) -> None:
        sys.stdout.write(format_event(event) + "\n")
        sys.stdout.flush()

    source.on(ANY_EVENT, print_event)
    try:
        await source.run()
    finally:
        await source.close()


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        headers = parse_headers(args.header)
    except ValueError as exc:
        parser.error(str(exc))
    config = config_from_args(args)

    setup_logging(config.log_dir, config.log_level)

    source = EventSource(
        args.url,
        config=config,
        headers=headers,
        last_event_id=args.last_event_id,
    )
    try:
        asyncio.run(_follow(source))
    except KeyboardInterrupt:
        log.info("sse_interrupted", url=args.url, last_event_id=source.last_event_id)


if __name__ == "__main__":
    main()
