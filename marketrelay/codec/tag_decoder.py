"""
Marketplace tag decoding.

Marketplace transactions carry a 27-tryte tag:

    SEMARKETWEB A 999999999999999
    ^ prefix    ^ message type code

The code letter sits at a fixed offset (the prefix length by default).
"""

from __future__ import annotations

from marketrelay.codec.trytes import is_trytes
from marketrelay.core.events import MessageType

TAG_LENGTH = 27

MESSAGE_TYPE_CODES: dict[str, MessageType] = {
    "A": MessageType.CALL_FOR_PROPOSAL,
    "B": MessageType.PROPOSAL,
    "C": MessageType.ACCEPT_PROPOSAL,
    "D": MessageType.REJECT_PROPOSAL,
    "E": MessageType.INFORM_CONFIRM,
    "F": MessageType.INFORM_PAYMENT,
}

_CODES_BY_TYPE = {message_type: code for code, message_type in MESSAGE_TYPE_CODES.items()}


class TagDecoder:
    """Maps a transaction tag to its marketplace message type."""

    def __init__(self, type_offset: int = 11):
        if type_offset < 0 or type_offset >= TAG_LENGTH:
            raise ValueError(f"type_offset must be within a {TAG_LENGTH}-tryte tag")
        self._type_offset = type_offset

    @property
    def type_offset(self) -> int:
        return self._type_offset

    def classify(self, tag: str | None) -> MessageType | None:
        """Return the message type for a tag, or None if it is not a marketplace tag."""
        if not tag or len(tag) <= self._type_offset:
            return None
        return MESSAGE_TYPE_CODES.get(tag[self._type_offset])

    def encode(self, prefix: str, message_type: MessageType) -> str:
        """Build a padded tag for prefix + message type."""
        if len(prefix) != self._type_offset:
            raise ValueError(
                f"prefix must be exactly {self._type_offset} trytes, got {len(prefix)}"
            )
        if not is_trytes(prefix):
            raise ValueError(f"prefix {prefix!r} is not valid trytes")
        tag = prefix + _CODES_BY_TYPE[message_type]
        return tag.ljust(TAG_LENGTH, "9")
