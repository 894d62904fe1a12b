"""
Message Router - turns raw node messages into subscriber events.

IRI publishes transactions on the "tx" topic as space separated text:

    tx <hash> <address> <value> <obsoleteTag> <timestamp> <currentIndex>
       <lastIndex> <bundle> <trunk> <branch> <arrivalTime> <tag>

Only marketplace transactions (known message type, configured tag prefix)
are resolved and dispatched.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any

from marketrelay.codec.tag_decoder import TagDecoder
from marketrelay.core.events import EventPayload, MessageType
from marketrelay.services.payload_extractor import PayloadExtractionError, PayloadExtractor
from marketrelay.spine.registry import Subscription, SubscriptionRegistry

logger = logging.getLogger(__name__)

TX_EVENT = "tx"


class TxFields:
    """Field positions in a "tx" message."""
    EVENT = 0
    HASH = 1
    ADDRESS = 2
    TIMESTAMP = 5
    BUNDLE = 8
    TAG = 12

    COUNT = 13


class MalformedMessageError(Exception):
    """Raised when an inbound message does not match the tx layout."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed message ({reason}): {raw[:120]!r}")


@dataclass(frozen=True)
class TxMessage:
    """Validated view of a "tx" message."""
    event: str
    hash: str
    address: str
    timestamp: int
    bundle: str
    tag: str
    fields: tuple[str, ...]


def parse_tx_message(text: str) -> TxMessage:
    """Split and validate a tx message. Raises MalformedMessageError."""
    fields = text.split(" ")
    if len(fields) < TxFields.COUNT:
        raise MalformedMessageError(
            text, f"expected at least {TxFields.COUNT} fields, got {len(fields)}"
        )

    raw_ts = fields[TxFields.TIMESTAMP]
    digits = raw_ts[1:] if raw_ts.startswith("-") else raw_ts
    if not (digits.isascii() and digits.isdigit()):
        raise MalformedMessageError(text, f"timestamp {raw_ts!r} is not an integer")
    timestamp = int(raw_ts)

    return TxMessage(
        event=fields[TxFields.EVENT],
        hash=fields[TxFields.HASH],
        address=fields[TxFields.ADDRESS],
        timestamp=timestamp,
        bundle=fields[TxFields.BUNDLE],
        tag=fields[TxFields.TAG],
        fields=tuple(fields),
    )


def build_payload(data: Any, message_type: MessageType, message: TxMessage) -> EventPayload:
    return EventPayload(
        data=data,
        message_type=message_type,
        tag=message.tag,
        hash=message.hash,
        address=message.address,
        timestamp=message.timestamp,
    )


class MessageRouter:
    """
    Filters inbound messages and dispatches payloads to subscribers.

    By default only the first subscriber of an event receives the payload.
    With fan_out=True every subscriber of the event receives it, in
    registration order.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        tag_decoder: TagDecoder,
        payload_extractor: PayloadExtractor,
        prefix: str,
        fan_out: bool = False,
    ):
        self._registry = registry
        self._tag_decoder = tag_decoder
        self._extractor = payload_extractor
        self._prefix = prefix
        self._fan_out = fan_out
        self._stats = {
            "msgs_in": 0,
            "dispatched": 0,
            "filtered": 0,
            "malformed": 0,
            "payload_errors": 0,
            "callback_errors": 0,
        }

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def handle_message(self, raw: bytes) -> None:
        """Transport handler. Failures are logged and never propagate."""
        self._stats["msgs_in"] += 1
        try:
            await self.route(raw)
        except MalformedMessageError as e:
            self._stats["malformed"] += 1
            logger.error(f"[ROUTER] {e}")
        except PayloadExtractionError as e:
            self._stats["payload_errors"] += 1
            logger.warning(f"[ROUTER] Skipping dispatch: {e}")

    async def route(self, raw: bytes) -> EventPayload | None:
        """
        Route one message. Returns the dispatched payload, or None if dropped.

        Raises MalformedMessageError and PayloadExtractionError. Any error
        from the extractor is reported as PayloadExtractionError.
        """
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessageError(raw.decode("utf-8", "replace"), f"invalid UTF-8: {e}") from e

        event = text.split(" ", 1)[0]
        if event != TX_EVENT or not self._registry.has_subscribers(event):
            self._stats["filtered"] += 1
            return None

        message = parse_tx_message(text)
        message_type = self._tag_decoder.classify(message.tag)
        if message_type is None or not message.tag.startswith(self._prefix):
            self._stats["filtered"] += 1
            return None

        try:
            data = await self._extractor.extract(message.bundle)
        except PayloadExtractionError:
            raise
        except Exception as e:
            raise PayloadExtractionError(message.bundle, f"{type(e).__name__}: {e}") from e
        payload = build_payload(data, message_type, message)
        await self._dispatch(event, payload)
        return payload

    async def _dispatch(self, event: str, payload: EventPayload) -> None:
        # Subscriptions may change while the payload was being resolved.
        if self._fan_out:
            targets = self._registry.subscribers(event)
        else:
            first = self._registry.first(event)
            targets = [first] if first else []

        for subscription in targets:
            await self._invoke(subscription, event, payload)

    async def _invoke(self, subscription: Subscription, event: str, payload: EventPayload) -> None:
        try:
            result = subscription.callback(event, payload)
            if inspect.isawaitable(result):
                await result
            self._stats["dispatched"] += 1
        except Exception as e:
            self._stats["callback_errors"] += 1
            logger.error(f"[ROUTER] Callback error for subscription {subscription.id}: {e}")
