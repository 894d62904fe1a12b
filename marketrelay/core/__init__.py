"""Core modules: configuration and event payload types."""

from marketrelay.core.config import RelayConfig, NodeConfig, get_config, reset_config
from marketrelay.core.events import EventPayload, MessageType, EventCallback

__all__ = [
    "RelayConfig",
    "NodeConfig",
    "get_config",
    "reset_config",
    "EventPayload",
    "MessageType",
    "EventCallback",
]
