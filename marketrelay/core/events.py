"""
Event types delivered to relay subscribers.

Every matched transaction becomes exactly one EventPayload:
- data          (decoded bundle payload)
- message_type  (marketplace message classification)
- tag / hash / address (raw transaction fields)
- timestamp     (integer, seconds since epoch as sent by the node)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel


class MessageType(str, Enum):
    """Marketplace message kinds carried in transaction tags."""

    CALL_FOR_PROPOSAL = "callForProposal"
    PROPOSAL = "proposal"
    ACCEPT_PROPOSAL = "acceptProposal"
    REJECT_PROPOSAL = "rejectProposal"
    INFORM_CONFIRM = "informConfirm"
    INFORM_PAYMENT = "informPayment"


class EventPayload(BaseModel):
    """
    Normalized payload for one matched transaction.

    Built once per message and handed to subscriber callbacks.
    """

    data: Any = None
    message_type: MessageType
    tag: str
    hash: str
    address: str
    timestamp: int

    model_config = {"frozen": True}

    def to_dict(self) -> dict[str, Any]:
        """Wire form with camelCase keys, as served to UI clients."""
        return {
            "data": self.data,
            "messageType": self.message_type.value,
            "tag": self.tag,
            "hash": self.hash,
            "address": self.address,
            "timestamp": self.timestamp,
        }


# Subscriber callbacks receive (event, payload) and may be sync or async.
EventCallback = Callable[[str, EventPayload], Union[None, Awaitable[None]]]
