"""
ZMQ Service - public subscribe/unsubscribe API of the relay.

Lifecycle:
1. First subscribe() opens the upstream socket and applies the topic filter
2. Matching transactions are routed to subscriber callbacks
3. Unsubscribing the last subscriber of an event drops its filter
4. Unsubscribing the last subscriber overall closes the socket
"""

from __future__ import annotations

import logging
from typing import Any

from marketrelay.codec.tag_decoder import TagDecoder
from marketrelay.core.config import RelayConfig, get_config
from marketrelay.core.events import EventCallback
from marketrelay.services.payload_extractor import IotaPayloadExtractor, PayloadExtractor
from marketrelay.spine.connection import ConnectionManager, TransportFactory
from marketrelay.spine.registry import SubscriptionRegistry
from marketrelay.spine.router import MessageRouter
from marketrelay.spine.transport import ZmqTransport

logger = logging.getLogger(__name__)


class ZmqService:
    """
    Lazily connected relay from the node's ZMQ feed to in-process callbacks.

    Usage:
        service = ZmqService(RelayConfig.from_env())
        sub_id = await service.subscribe("tx", on_tx)
        ...
        await service.unsubscribe(sub_id)
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        transport_factory: TransportFactory = ZmqTransport,
        tag_decoder: TagDecoder | None = None,
        payload_extractor: PayloadExtractor | None = None,
    ):
        self._config = config or get_config()
        self._registry = SubscriptionRegistry()
        self._extractor = payload_extractor or IotaPayloadExtractor(
            node_url=self._config.node.url,
            timeout=self._config.node.timeout_sec,
        )
        self._router = MessageRouter(
            registry=self._registry,
            tag_decoder=tag_decoder or TagDecoder(self._config.type_offset),
            payload_extractor=self._extractor,
            prefix=self._config.prefix,
            fan_out=self._config.fan_out,
        )
        self._connection = ConnectionManager(
            endpoint=self._config.endpoint,
            on_message=self._router.handle_message,
            transport_factory=transport_factory,
        )

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self._router.stats,
            **self._connection.stats,
            "subscriptions": len(self._registry),
            "events": self._registry.events(),
        }

    async def subscribe(self, event: str, callback: EventCallback) -> str:
        """
        Subscribe to a named event.

        Returns the id to pass to unsubscribe(). Raises RelayConnectionError
        if the upstream socket cannot be opened; the subscription is not kept.
        """
        subscription, created = self._registry.add(event, callback)
        try:
            if created:
                await self._connection.add_filter(event)
            await self._connection.open(self._registry.events())
        except Exception:
            self._registry.remove(subscription.id)
            raise

        logger.info(f"[ZMQ] Subscription {subscription.id} added for '{event}'")
        return subscription.id

    async def subscribe_event(self, event: str, callback: EventCallback) -> str:
        """Subscribe to a specific event. Same contract as subscribe()."""
        return await self.subscribe(event, callback)

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription. Unknown ids are ignored."""
        removal = self._registry.remove(subscription_id)
        if removal is None:
            logger.debug(f"[ZMQ] Unsubscribe for unknown id {subscription_id}")
            return

        logger.info(f"[ZMQ] Subscription {subscription_id} removed from '{removal.event}'")
        if removal.event_emptied:
            await self._connection.remove_filter(removal.event)
        if removal.registry_empty:
            await self._connection.close()

    async def close(self) -> None:
        """Drop every subscription, close the socket and the payload client."""
        for subscription in list(self._registry):
            self._registry.remove(subscription.id)
        await self._connection.close()
        await self._extractor.close()
