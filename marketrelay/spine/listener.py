"""
Relay Listener - subscribes to the node feed and logs marketplace events.

Usage:
    python -m marketrelay.spine.listener
    python -m marketrelay.spine.listener --endpoint tcp://node:5556 --fan-out
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
from pathlib import Path

from dotenv import load_dotenv

from marketrelay.core.config import RelayConfig
from marketrelay.core.events import EventPayload
from marketrelay.spine.event_log import EventLogWriter
from marketrelay.spine.zmq_service import ZmqService

logger = logging.getLogger(__name__)


class RelayListener:
    """Holds subscriptions on a ZmqService and records every delivered event."""

    def __init__(
        self,
        service: ZmqService,
        events: list[str],
        writer: EventLogWriter | None = None,
    ):
        self._service = service
        self._events = events
        self._writer = writer
        self._subscription_ids: list[str] = []
        self._received = 0

    @property
    def received(self) -> int:
        return self._received

    async def on_event(self, event: str, payload: EventPayload) -> None:
        self._received += 1
        logger.info(
            f"[LISTENER] {event} {payload.message_type.value} "
            f"hash={payload.hash[:12]}... ts={payload.timestamp}"
        )
        print(json.dumps({"event": event, **payload.to_dict()}, default=str), flush=True)
        if self._writer:
            self._writer.record(event, payload)

    async def start(self) -> None:
        if self._writer:
            self._writer.open()
        for event in self._events:
            self._subscription_ids.append(await self._service.subscribe(event, self.on_event))
        logger.info(f"[LISTENER] Listening for {self._events}")

    async def stop(self) -> None:
        for subscription_id in self._subscription_ids:
            await self._service.unsubscribe(subscription_id)
        self._subscription_ids.clear()
        await self._service.close()
        if self._writer:
            self._writer.close()
        logger.info(f"[LISTENER] Stopped after {self._received} events")


async def async_main(config: RelayConfig, events: list[str], log_events: bool = True) -> None:
    """Async main for the listener."""
    service = ZmqService(config)
    writer = EventLogWriter(config.event_log_dir) if log_events else None
    listener = RelayListener(service, events, writer)

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("[LISTENER] Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    try:
        await listener.start()
        await shutdown_event.wait()
    finally:
        await listener.stop()


def build_config(args: argparse.Namespace, base: RelayConfig) -> RelayConfig:
    """Apply CLI overrides on top of the environment config."""
    overrides = {}
    if args.endpoint:
        overrides["endpoint"] = args.endpoint
    if args.prefix:
        overrides["prefix"] = args.prefix
    if args.fan_out:
        overrides["fan_out"] = True
    if args.log_dir:
        overrides["event_log_dir"] = Path(args.log_dir)
    return dataclasses.replace(base, **overrides)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Marketplace transaction relay listener")
    parser.add_argument(
        "--events",
        type=str,
        default="tx",
        help="Comma-separated list of events to subscribe to (default: tx)",
    )
    parser.add_argument("--endpoint", type=str, default=None, help="ZMQ endpoint of the node")
    parser.add_argument("--prefix", type=str, default=None, help="Tag prefix to accept")
    parser.add_argument(
        "--fan-out",
        action="store_true",
        help="Deliver to every subscriber of an event instead of the first",
    )
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for the JSONL event log")
    parser.add_argument("--no-log", action="store_true", help="Do not write the JSONL event log")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    load_dotenv()
    args = parse_args(argv)
    config = build_config(args, RelayConfig.from_env())

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    events = [e.strip() for e in args.events.split(",") if e.strip()]

    try:
        asyncio.run(async_main(config, events, log_events=not args.no_log))
    except KeyboardInterrupt:
        logger.info("[LISTENER] Interrupted")


if __name__ == "__main__":
    main()
