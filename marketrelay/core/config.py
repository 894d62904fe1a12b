"""
Centralized configuration for the relay.
Loads from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class NodeConfig:
    """IOTA node used to resolve bundle payloads."""
    url: str = "http://localhost:14265"
    timeout_sec: float = 10.0


@dataclass(frozen=True)
class RelayConfig:
    """Relay settings: upstream feed, tag filter and dispatch policy."""
    endpoint: str = "tcp://localhost:5556"
    prefix: str = "SEMARKETWEB"
    type_offset: int = 11
    fan_out: bool = False
    node: NodeConfig = field(default_factory=NodeConfig)
    log_level: str = "INFO"
    event_log_dir: Path = field(default_factory=lambda: Path("./logs/relay"))

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables."""
        return cls(
            endpoint=os.getenv("RELAY_ZMQ_ENDPOINT", "tcp://localhost:5556"),
            prefix=os.getenv("RELAY_TAG_PREFIX", "SEMARKETWEB"),
            type_offset=int(os.getenv("RELAY_TAG_TYPE_OFFSET", "11")),
            fan_out=os.getenv("RELAY_FAN_OUT", "false").lower() == "true",
            node=NodeConfig(
                url=os.getenv("RELAY_IOTA_NODE_URL", "http://localhost:14265"),
                timeout_sec=float(os.getenv("RELAY_IOTA_TIMEOUT", "10.0")),
            ),
            log_level=os.getenv("RELAY_LOG_LEVEL", "INFO"),
            event_log_dir=Path(os.getenv("RELAY_EVENT_LOG_DIR", "./logs/relay")),
        )


# Global config instance (lazy-loaded)
_config: Optional[RelayConfig] = None


def get_config() -> RelayConfig:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = RelayConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    global _config
    _config = None
