"""Variable-length integer encoding compatible with the usual base-128 varints.

Unsigned values are written seven bits at a time, least significant group
first. Signed values are zig-zag encoded before they are written, so that
small negative numbers stay short.
"""

from __future__ import annotations

from itertools import islice

MAX_VARINT_LEN64 = 10

_MASK64 = (1 << 64) - 1
_INT64_OFFSET = 1 << 63


class VarintError(ValueError):
    """Raised when binary cache data is truncated or malformed."""


def _to_int64(value: int) -> int:
    return ((value + _INT64_OFFSET) & _MASK64) - _INT64_OFFSET


def encode_uvarint(value: int) -> bytes:
    """Encode value as an unsigned 64-bit varint."""
    value &= _MASK64
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_varint(value: int) -> bytes:
    """Encode value as a zig-zag encoded signed 64-bit varint."""
    value = _to_int64(value)
    zigzag = (value << 1) & _MASK64
    if value < 0:
        zigzag ^= _MASK64
    return encode_uvarint(zigzag)


def decode_uvarint(buf: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint at offset.

    Returns the value and the offset just past it.
    """
    result = 0
    shift = 0
    for i, byte in enumerate(islice(buf, offset, offset + MAX_VARINT_LEN64)):
        if byte < 0x80:
            if i == MAX_VARINT_LEN64 - 1 and byte > 1:
                raise VarintError("varint overflows a 64-bit integer")
            return result | (byte << shift), offset + i + 1
        result |= (byte & 0x7F) << shift
        shift += 7
    if len(buf) - offset >= MAX_VARINT_LEN64:
        raise VarintError("varint overflows a 64-bit integer")
    raise VarintError("missing data for varint")


def decode_varint(buf: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a zig-zag encoded signed varint at offset.

    Returns the value and the offset just past it.
    """
    zigzag, offset = decode_uvarint(buf, offset)
    value = zigzag >> 1
    if zigzag & 1:
        value = ~value
    return value, offset