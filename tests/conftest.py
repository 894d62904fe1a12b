"""Shared fakes for relay tests: in-memory transport and payload extractor."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from marketrelay.core.config import RelayConfig
from marketrelay.services.payload_extractor import PayloadExtractionError, PayloadExtractor
from marketrelay.spine.transport import MessageHandler, Transport
from marketrelay.spine.zmq_service import ZmqService

PREFIX = "SEMARKETWEB"
CFP_TAG = "SEMARKETWEBA999999999999999"


class FakeTransport(Transport):
    """Records calls and lets tests push messages through the handler."""

    instances: list["FakeTransport"] = []

    def __init__(self, fail_connect: bool = False, yield_on_connect: bool = False):
        self.fail_connect = fail_connect
        self.yield_on_connect = yield_on_connect
        self.endpoint: str | None = None
        self.topics: list[str] = []
        self.calls: list[tuple[str, Any]] = []
        self.handler: MessageHandler | None = None
        self.closed = False
        FakeTransport.instances.append(self)

    async def connect(self, endpoint: str) -> None:
        self.calls.append(("connect", endpoint))
        if self.yield_on_connect:
            await asyncio.sleep(0)
        if self.fail_connect:
            raise OSError("connection refused")
        self.endpoint = endpoint

    async def subscribe(self, topic: str) -> None:
        self.calls.append(("subscribe", topic))
        self.topics.append(topic)

    async def unsubscribe(self, topic: str) -> None:
        self.calls.append(("unsubscribe", topic))
        self.topics.remove(topic)

    def on_message(self, handler: MessageHandler) -> None:
        self.handler = handler

    async def close(self) -> None:
        self.calls.append(("close", None))
        self.closed = True

    async def deliver(self, raw: str | bytes) -> None:
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        assert self.handler is not None
        await self.handler(raw)


class FakeExtractor(PayloadExtractor):
    """Returns canned payloads per bundle; unknown bundles fail."""

    def __init__(self, payloads: dict[str, Any] | None = None, default: Any = None):
        self.payloads = payloads or {}
        self.default = default
        self.requested: list[str] = []
        self.closed = False

    async def extract(self, bundle: str) -> Any:
        self.requested.append(bundle)
        if bundle in self.payloads:
            return self.payloads[bundle]
        if self.default is not None:
            return self.default
        raise PayloadExtractionError(bundle, "not found")

    async def close(self) -> None:
        self.closed = True


def make_tx(
    tag: str = CFP_TAG,
    event: str = "tx",
    tx_hash: str = "HASHAAA",
    address: str = "ADDRBBB",
    timestamp: str = "1566308102",
    bundle: str = "BUNDLECCC",
) -> str:
    """Build an IRI-style tx message with the given fields."""
    fields = [event, tx_hash, address, "0", "OBSOLETE", timestamp, "0", "0",
              bundle, "TRUNK", "BRANCH", "1566308103", tag]
    return " ".join(fields)


@pytest.fixture(autouse=True)
def _reset_fake_transports():
    FakeTransport.instances.clear()
    yield
    FakeTransport.instances.clear()


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(endpoint="tcp://node:5556", prefix=PREFIX)


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor(default={"frame": {"type": "callForProposal"}})


@pytest.fixture
def service(relay_config: RelayConfig, extractor: FakeExtractor) -> ZmqService:
    return ZmqService(relay_config, transport_factory=FakeTransport, payload_extractor=extractor)
