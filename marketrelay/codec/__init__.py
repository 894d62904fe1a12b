"""Codecs: marketplace tags and IOTA tryte data."""

from marketrelay.codec.tag_decoder import TagDecoder, MESSAGE_TYPE_CODES, TAG_LENGTH
from marketrelay.codec.trytes import (
    TRYTE_ALPHABET,
    TryteDecodeError,
    is_trytes,
    trytes_to_ascii,
    trytes_to_int,
    ascii_to_trytes,
    int_to_trytes,
)

__all__ = [
    "TagDecoder",
    "MESSAGE_TYPE_CODES",
    "TAG_LENGTH",
    "TRYTE_ALPHABET",
    "TryteDecodeError",
    "is_trytes",
    "trytes_to_ascii",
    "trytes_to_int",
    "ascii_to_trytes",
    "int_to_trytes",
]
