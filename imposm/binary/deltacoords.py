"""Compact delta encoding for sorted lists of node coordinates."""

from __future__ import annotations

from collections.abc import Sequence

from imposm.binary.serialize import coord_to_int, delta_pack, delta_unpack, int_to_coord
from imposm.binary.varint import VarintError, decode_uvarint, decode_varint, encode_uvarint, encode_varint
from imposm.element import Node

_MASK32 = 0xFFFFFFFF
_ERROR = "unmarshal delta coords: missing data for varint or overflow"


def marshal_delta_nodes(nodes: Sequence[Node]) -> bytes:
    """Serialize IDs and coordinates of nodes as delta-encoded varints."""
    out = bytearray(encode_uvarint(len(nodes)))
    columns = (
        [node.id for node in nodes],
        [coord_to_int(node.long) for node in nodes],
        [coord_to_int(node.lat) for node in nodes],
    )
    for column in columns:
        for delta in delta_pack(column):
            out += encode_varint(delta)
    return bytes(out)


def _read_column(buf: bytes, offset: int, count: int) -> tuple[list[int], int]:
    deltas = []
    for _ in range(count):
        value, offset = decode_varint(buf, offset)
        deltas.append(value)
    return delta_unpack(deltas), offset


def unmarshal_delta_nodes(buf: bytes) -> list[Node]:
    """Deserialize nodes written by marshal_delta_nodes."""
    try:
        count, offset = decode_uvarint(buf, 0)
        ids, offset = _read_column(buf, offset, count)
        longs, offset = _read_column(buf, offset, count)
        lats, offset = _read_column(buf, offset, count)
    except VarintError as exc:
        raise VarintError(_ERROR) from exc
    return [
        Node(id=node_id, long=int_to_coord(long & _MASK32), lat=int_to_coord(lat & _MASK32))
        for node_id, long, lat in zip(ids, longs, lats)
    ]