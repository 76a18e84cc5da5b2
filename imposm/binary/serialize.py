"""Binary (un)marshaling of cached nodes, ways and relations."""

from __future__ import annotations

from collections.abc import Iterable
from itertools import accumulate

from imposm.binary.tags import tags_as_array, tags_from_array
from imposm.binary.varint import (
    VarintError,
    decode_uvarint,
    decode_varint,
    encode_uvarint,
    encode_varint,
)
from imposm.element import Member, MemberType, Node, Relation, Way

COORD_FACTOR = 11930464.7083  # ((2 << 31) - 1) / 360.0

_MASK32 = 0xFFFFFFFF


def coord_to_int(coord: float) -> int:
    """Convert a WGS84 coordinate into an unsigned 32-bit integer."""
    return int((coord + 180.0) * COORD_FACTOR) & _MASK32


def int_to_coord(coord: int) -> float:
    """Convert an unsigned 32-bit integer back into a WGS84 coordinate."""
    return coord / COORD_FACTOR - 180.0


def delta_pack(data: Iterable[int]) -> list[int]:
    """Return the values as differences to their predecessor."""
    values = list(data)
    if not values:
        return []
    return [values[0], *(b - a for a, b in zip(values, values[1:]))]


def delta_unpack(data: Iterable[int]) -> list[int]:
    """Reverse delta_pack."""
    return list(accumulate(data))


class _Writer:
    def __init__(self) -> None:
        self._out = bytearray()

    def uvarint(self, value: int) -> None:
        self._out += encode_uvarint(value)

    def varint(self, value: int) -> None:
        self._out += encode_varint(value)

    def string(self, value: str) -> None:
        raw = value.encode("utf-8", "surrogatepass")
        self.uvarint(len(raw))
        self._out += raw

    def strings(self, values: list[str]) -> None:
        self.uvarint(len(values))
        for value in values:
            self.string(value)

    def getvalue(self) -> bytes:
        return bytes(self._out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    def uvarint(self) -> int:
        value, self._offset = decode_uvarint(self._data, self._offset)
        return value

    def varint(self) -> int:
        value, self._offset = decode_varint(self._data, self._offset)
        return value

    def string(self) -> str:
        size = self.uvarint()
        end = self._offset + size
        if end > len(self._data):
            raise VarintError("missing data for string")
        raw = self._data[self._offset:end]
        self._offset = end
        try:
            return raw.decode("utf-8", "surrogatepass")
        except UnicodeDecodeError as exc:
            raise VarintError("invalid string data") from exc

    def strings(self) -> list[str]:
        return [self.string() for _ in range(self.uvarint())]

    def finish(self) -> None:
        if self._offset != len(self._data):
            raise VarintError("unexpected trailing data")


def marshal_node(node: Node) -> bytes:
    """Serialize the coordinates and tags of a node."""
    writer = _Writer()
    writer.uvarint(coord_to_int(node.long))
    writer.uvarint(coord_to_int(node.lat))
    writer.strings(tags_as_array(node.tags))
    return writer.getvalue()


def unmarshal_node(data: bytes) -> Node:
    """Deserialize a node; its ID is left at 0."""
    reader = _Reader(data)
    long = int_to_coord(reader.uvarint() & _MASK32)
    lat = int_to_coord(reader.uvarint() & _MASK32)
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Node(long=long, lat=lat, tags=tags)


def marshal_way(way: Way) -> bytes:
    """Serialize the node references and tags of a way."""
    writer = _Writer()
    refs = delta_pack(way.refs)
    writer.uvarint(len(refs))
    for ref in refs:
        writer.varint(ref)
    writer.strings(tags_as_array(way.tags))
    return writer.getvalue()


def unmarshal_way(data: bytes) -> Way:
    """Deserialize a way; its ID is left at 0."""
    reader = _Reader(data)
    packed = [reader.varint() for _ in range(reader.uvarint())]
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Way(refs=delta_unpack(packed), tags=tags)


def marshal_relation(relation: Relation) -> bytes:
    """Serialize the members and tags of a relation."""
    writer = _Writer()
    writer.uvarint(len(relation.members))
    for member in relation.members:
        writer.varint(member.id)
        writer.uvarint(int(member.type))
        writer.string(member.role)
    writer.strings(tags_as_array(relation.tags))
    return writer.getvalue()


def unmarshal_relation(data: bytes) -> Relation:
    """Deserialize a relation; its ID is left at 0."""
    reader = _Reader(data)
    members = []
    for _ in range(reader.uvarint()):
        member_id = reader.varint()
        raw_type = reader.uvarint()
        try:
            member_type = MemberType(raw_type)
        except ValueError as exc:
            raise VarintError(f"unknown member type {raw_type}") from exc
        members.append(Member(id=member_id, type=member_type, role=reader.string()))
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Relation(members=members, tags=tags)