"""Basic OSM element types and sorted ID reference lists."""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass, field

# Subtracted from relation IDs to avoid conflicts with way and node IDs when
# nodes, ways and relations are imported into the same table. Ways go from
# -0 to -100,000,000,000,000,000, relations from there downwards.
REL_ID_OFFSET = -100_000_000_000_000_000


class MemberType(enum.IntEnum):
    """Type of a relation member."""

    NODE = 0
    WAY = 1
    RELATION = 2


@dataclass
class Node:
    """An OSM node with WGS84 coordinates."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    long: float = 0.0
    lat: float = 0.0


@dataclass
class Way:
    """An OSM way with its node references and, once filled, its nodes."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    refs: list[int] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)


@dataclass
class Member:
    """A member of a relation."""

    id: int = 0
    type: MemberType = MemberType.NODE
    role: str = ""
    way: Way | None = None
    node: Node | None = None


@dataclass
class Relation:
    """An OSM relation."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    members: list[Member] = field(default_factory=list)


@dataclass
class IDRefs:
    """An ID together with a sorted list of unique references."""

    id: int = 0
    refs: list[int] = field(default_factory=list)

    def add(self, ref: int) -> None:
        """Insert ref at its sorted position unless it is already present."""
        i = bisect.bisect_left(self.refs, ref)
        if i < len(self.refs) and self.refs[i] == ref:
            return
        self.refs.insert(i, ref)

    def delete(self, ref: int) -> None:
        """Remove ref if present."""
        i = bisect.bisect_left(self.refs, ref)
        if i < len(self.refs) and self.refs[i] == ref:
            del self.refs[i]