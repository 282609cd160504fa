"""Compact length encoding used for every array size in the wire format.

Lengths are written 7 bits per byte, least significant group first, with the
high bit of each byte flagging that another byte follows. Values are capped
at 16 bits so an encoding never exceeds three bytes.
"""

from __future__ import annotations

from .errors import MalformedLength

MAX_LENGTH = 0xFFFF
MAX_ENCODED_SIZE = 3


def encode_length(value: int) -> bytes:
    """Return the canonical minimal encoding of ``value``."""

    if value < 0 or value > MAX_LENGTH:
        raise MalformedLength(f"length {value} is outside the range 0..{MAX_LENGTH}")

    out = bytearray()
    remaining = value
    while True:
        group = remaining & 0x7F
        remaining >>= 7
        if remaining:
            out.append(group | 0x80)
        else:
            out.append(group)
            return bytes(out)


def decode_length(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a length at ``offset`` and return ``(value, bytes_consumed)``."""

    value = 0
    for position in range(MAX_ENCODED_SIZE):
        index = offset + position
        if index >= len(data):
            raise MalformedLength(f"compact length truncated at offset {index}")
        byte = data[index]
        if position > 0 and byte == 0:
            raise MalformedLength(f"non-canonical compact length at offset {offset}")
        value |= (byte & 0x7F) << (7 * position)
        if value > MAX_LENGTH:
            raise MalformedLength(f"compact length at offset {offset} exceeds {MAX_LENGTH}")
        if not byte & 0x80:
            return value, position + 1
    raise MalformedLength(f"compact length at offset {offset} is longer than {MAX_ENCODED_SIZE} bytes")
