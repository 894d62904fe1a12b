"""
Connection Manager - owns the single upstream socket.

States:
    DISCONNECTED --open()--> CONNECTED --close()--> DISCONNECTED

open, close and filter changes run under one lock, so concurrent callers
see a single transport.

The socket is opened lazily by the first subscription and closed when
the last one goes away. Topic filters for every registered event are
re-applied on open.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable

from marketrelay.spine.transport import MessageHandler, Transport, ZmqTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"


class RelayConnectionError(Exception):
    """Raised when the upstream socket cannot be opened."""

    def __init__(self, endpoint: str, cause: BaseException):
        self.endpoint = endpoint
        super().__init__(f"Unable to connect to ZMQ at {endpoint}.\n{cause}")


class ConnectionManager:
    """Opens, filters and closes the shared upstream transport."""

    def __init__(
        self,
        endpoint: str,
        on_message: MessageHandler,
        transport_factory: TransportFactory = ZmqTransport,
    ):
        self._endpoint = endpoint
        self._on_message = on_message
        self._factory = transport_factory
        self._transport: Transport | None = None
        self._filters: set[str] = set()
        self._lock = asyncio.Lock()
        self._stats = {"connects": 0, "disconnects": 0, "connect_failures": 0}
        self._connect_time: float = 0.0

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.CONNECTED if self._transport is not None else ConnectionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "connected": self.is_connected,
            "uptime_s": time.time() - self._connect_time if self._transport is not None else 0,
        }

    async def open(self, topics: Iterable[str]) -> None:
        """Connect and apply filters for topics. No-op when already connected."""
        async with self._lock:
            if self._transport is not None:
                return
            await self._connect(topics)

    async def _connect(self, topics: Iterable[str]) -> None:
        transport = self._factory()
        filters: set[str] = set()
        try:
            await transport.connect(self._endpoint)
            transport.on_message(self._on_message)
            for topic in topics:
                if topic not in filters:
                    await transport.subscribe(topic)
                    filters.add(topic)
        except Exception as e:
            self._stats["connect_failures"] += 1
            logger.error(f"[ZMQ] Failed to connect to {self._endpoint}: {e}")
            try:
                await transport.close()
            except Exception as close_err:
                logger.debug(f"[ZMQ] Cleanup after failed connect raised: {close_err}")
            raise RelayConnectionError(self._endpoint, e) from e

        self._transport = transport
        self._filters = filters
        self._connect_time = time.time()
        self._stats["connects"] += 1
        logger.info(f"[ZMQ] Connected to {self._endpoint}")

    async def add_filter(self, topic: str) -> None:
        async with self._lock:
            if self._transport is not None and topic not in self._filters:
                await self._transport.subscribe(topic)
                self._filters.add(topic)

    async def remove_filter(self, topic: str) -> None:
        async with self._lock:
            if self._transport is not None and topic in self._filters:
                await self._transport.unsubscribe(topic)
                self._filters.discard(topic)

    async def close(self) -> None:
        """Close and release the transport. No-op when disconnected."""
        async with self._lock:
            if self._transport is None:
                return
            transport, self._transport = self._transport, None
            self._filters = set()
            self._stats["disconnects"] += 1
            await transport.close()
            logger.info(f"[ZMQ] Disconnected from {self._endpoint}")
