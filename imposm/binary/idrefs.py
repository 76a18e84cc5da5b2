"""Compact encoding of bunches of IDs with their reference lists."""

from __future__ import annotations

from collections.abc import Sequence
from itertools import islice

from imposm.binary.serialize import delta_pack, delta_unpack
from imposm.binary.varint import VarintError, decode_uvarint, decode_varint, encode_uvarint, encode_varint
from imposm.element import IDRefs


def marshal_idrefs_bunch(id_refs: Sequence[IDRefs]) -> bytes:
    """Serialize a bunch of IDRefs.

    Layout: count, delta-encoded IDs, number of refs per ID, then all refs
    delta-encoded across the whole bunch.
    """
    out = bytearray(encode_uvarint(len(id_refs)))
    for delta in delta_pack(item.id for item in id_refs):
        out += encode_varint(delta)
    for item in id_refs:
        out += encode_uvarint(len(item.refs))
    for delta in delta_pack(ref for item in id_refs for ref in item.refs):
        out += encode_varint(delta)
    return bytes(out)


def unmarshal_idrefs_bunch(buf: bytes) -> list[IDRefs]:
    """Deserialize a bunch written by marshal_idrefs_bunch.

    An empty or unreadable header yields an empty list.
    """
    try:
        count, offset = decode_uvarint(buf, 0)
    except VarintError:
        return []

    try:
        id_deltas = []
        for _ in range(count):
            value, offset = decode_varint(buf, offset)
            id_deltas.append(value)
        ref_counts = []
        for _ in range(count):
            value, offset = decode_uvarint(buf, offset)
            ref_counts.append(value)
        ref_deltas = []
        for _ in range(sum(ref_counts)):
            value, offset = decode_varint(buf, offset)
            ref_deltas.append(value)
    except VarintError as exc:
        raise VarintError("unmarshal id refs: no data") from exc

    refs = iter(delta_unpack(ref_deltas))
    return [
        IDRefs(id=item_id, refs=list(islice(refs, num_refs)))
        for item_id, num_refs in zip(delta_unpack(id_deltas), ref_counts)
    ]