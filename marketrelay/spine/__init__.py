"""
Relay spine - ZMQ transaction feed to in-process subscribers.

Components:
- transport:   abstract pub/sub socket + ZeroMQ SUB implementation
- registry:    event -> subscriber bookkeeping
- connection:  lazy open/close of the single upstream socket
- router:      parse, filter and dispatch inbound tx messages
- zmq_service: public subscribe/unsubscribe API
- listener:    CLI that logs delivered events
"""

from marketrelay.spine.connection import ConnectionManager, ConnectionState, RelayConnectionError
from marketrelay.spine.registry import Removal, Subscription, SubscriptionRegistry
from marketrelay.spine.router import (
    MalformedMessageError,
    MessageRouter,
    TxMessage,
    parse_tx_message,
)
from marketrelay.spine.transport import Transport, ZmqTransport
from marketrelay.spine.zmq_service import ZmqService

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "RelayConnectionError",
    "Removal",
    "Subscription",
    "SubscriptionRegistry",
    "MalformedMessageError",
    "MessageRouter",
    "TxMessage",
    "parse_tx_message",
    "Transport",
    "ZmqTransport",
    "ZmqService",
]
