"""
Pub/sub transports for the upstream transaction feed.

Transport is the capability the relay needs from a socket:
connect, per-topic subscribe/unsubscribe, a message handler, close.
ZmqTransport implements it with an asyncio ZeroMQ SUB socket.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import zmq
import zmq.asyncio

logger = logging.getLogger(__name__)

MessageHandler = Callable[[bytes], Awaitable[None]]


class Transport(ABC):
    """Abstract subscriber socket."""

    @abstractmethod
    async def connect(self, endpoint: str) -> None:
        ...

    @abstractmethod
    async def subscribe(self, topic: str) -> None:
        ...

    @abstractmethod
    async def unsubscribe(self, topic: str) -> None:
        ...

    @abstractmethod
    def on_message(self, handler: MessageHandler) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class ZmqTransport(Transport):
    """
    ZeroMQ SUB socket reading on the running event loop.

    A single receive task awaits the handler for each message before
    reading the next one, so messages are handled in arrival order.
    """

    def __init__(self, context: Optional[zmq.asyncio.Context] = None):
        self._ctx = context or zmq.asyncio.Context.instance()
        self._socket: Optional[zmq.asyncio.Socket] = None
        self._handler: Optional[MessageHandler] = None
        self._recv_task: Optional[asyncio.Task] = None
        self._endpoint = ""

    async def connect(self, endpoint: str) -> None:
        if self._socket is not None:
            return
        socket = self._ctx.socket(zmq.SUB)
        try:
            socket.connect(endpoint)
        except zmq.ZMQError:
            socket.close(linger=0)
            raise
        self._socket = socket
        self._endpoint = endpoint
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info(f"[ZMQ] SUB socket connected to {endpoint}")

    async def subscribe(self, topic: str) -> None:
        if self._socket is None:
            raise RuntimeError("Not connected")
        self._socket.setsockopt_string(zmq.SUBSCRIBE, topic)
        logger.debug(f"[ZMQ] Subscribed to {topic}")

    async def unsubscribe(self, topic: str) -> None:
        if self._socket is None:
            raise RuntimeError("Not connected")
        self._socket.setsockopt_string(zmq.UNSUBSCRIBE, topic)
        logger.debug(f"[ZMQ] Unsubscribed from {topic}")

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def _recv_loop(self) -> None:
        while self._socket is not None:
            try:
                frames = await self._socket.recv_multipart()
            except asyncio.CancelledError:
                raise
            except zmq.ZMQError as e:
                if self._socket is None or self._socket.closed:
                    break
                logger.error(f"[ZMQ] Receive error on {self._endpoint}: {e}")
                continue

            if self._handler is None:
                continue
            # IRI publishes "<topic> <fields...>" as a single frame.
            try:
                await self._handler(b" ".join(frames))
            except Exception as e:
                logger.error(f"[ZMQ] Handler error on {self._endpoint}: {e}")

    async def close(self) -> None:
        if self._recv_task is not None:
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
            self._recv_task = None

        if self._socket is not None:
            self._socket.close(linger=0)
            self._socket = None
            logger.info(f"[ZMQ] SUB socket closed ({self._endpoint})")
