"""
Tryte helpers for IOTA transaction data.

A tryte is one character of the alphabet "9A-Z". Messages are stored
two trytes per byte; integers use balanced ternary (9=0, A..M=1..13,
N..Z=-13..-1), least significant tryte first.
"""

from __future__ import annotations

TRYTE_ALPHABET = "9ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class TryteDecodeError(ValueError):
    """Raised when a string is not valid tryte data."""


def is_trytes(value: str) -> bool:
    return all(ch in TRYTE_ALPHABET for ch in value)


def trytes_to_int(trytes: str) -> int:
    """Decode a balanced-ternary tryte string (e.g. currentIndex)."""
    result = 0
    for ch in reversed(trytes):
        index = TRYTE_ALPHABET.find(ch)
        if index < 0:
            raise TryteDecodeError(f"Invalid tryte {ch!r}")
        value = index if index <= 13 else index - 27
        result = result * 27 + value
    return result


def trytes_to_ascii(trytes: str) -> str:
    """
    Decode message trytes to text.

    Trailing '9' padding is stripped first. Raises TryteDecodeError on
    invalid characters.
    """
    trimmed = trytes.rstrip("9")
    if len(trimmed) % 2:
        trimmed += "9"

    chars = []
    for i in range(0, len(trimmed), 2):
        first = TRYTE_ALPHABET.find(trimmed[i])
        second = TRYTE_ALPHABET.find(trimmed[i + 1])
        if first < 0 or second < 0:
            raise TryteDecodeError(f"Invalid trytes at offset {i}: {trimmed[i:i + 2]!r}")
        chars.append(chr(first + second * 27))
    return "".join(chars)


def ascii_to_trytes(text: str) -> str:
    """Encode text as trytes. Only code points below 729 are representable."""
    out = []
    for ch in text:
        code = ord(ch)
        if code >= 27 * 27:
            raise TryteDecodeError(f"Character {ch!r} cannot be encoded as trytes")
        out.append(TRYTE_ALPHABET[code % 27])
        out.append(TRYTE_ALPHABET[code // 27])
    return "".join(out)


def int_to_trytes(value: int, length: int) -> str:
    """Encode an integer as balanced-ternary trytes, padded to length."""
    out = []
    remaining = value
    while remaining != 0:
        digit = remaining % 27
        remaining //= 27
        if digit > 13:
            digit -= 27
            remaining += 1
        out.append(TRYTE_ALPHABET[digit] if digit >= 0 else TRYTE_ALPHABET[digit + 27])
    encoded = "".join(out)
    if len(encoded) > length:
        raise TryteDecodeError(f"{value} does not fit in {length} trytes")
    return encoded.ljust(length, "9")
