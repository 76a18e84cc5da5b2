"""Cache of ways with their node references."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator

from imposm.binary.serialize import marshal_way, unmarshal_way
from imposm.cache.options import CacheOptions, load_cache_options
from imposm.cache.store import SKIP, KeyValueStore, NotFoundError, id_from_key, id_to_key
from imposm.element import Member, MemberType, Way


class WaysCache(KeyValueStore):
    """Stores ways keyed by way ID."""

    def __init__(self, path: str | os.PathLike[str], options: CacheOptions | None = None) -> None:
        super().__init__(path, options if options is not None else load_cache_options().ways)

    def put_way(self, way: Way) -> None:
        """Store a single way; skipped ways are ignored."""
        if way.id == SKIP:
            return
        self.put(id_to_key(way.id), marshal_way(way))

    def put_ways(self, ways: Iterable[Way]) -> None:
        """Store all non-skipped ways in one batch."""
        self.put_many((id_to_key(way.id), marshal_way(way)) for way in ways if way.id != SKIP)

    def get_way(self, id: int) -> Way:
        """Return the way with this ID or raise NotFoundError."""
        data = self.get(id_to_key(id))
        if data is None:
            raise NotFoundError()
        way = unmarshal_way(data)
        way.id = id
        return way

    def delete_way(self, id: int) -> None:
        """Remove the way with this ID."""
        self.delete(id_to_key(id))

    def __iter__(self) -> Iterator[Way]:
        for key, value in self.items():
            way = unmarshal_way(value)
            way.id = id_from_key(key)
            yield way

    def fill_members(self, members: Iterable[Member] | None) -> None:
        """Attach the cached way to every way member.

        Raises NotFoundError if a member way is missing.
        """
        for member in members or ():
            if member.type == MemberType.WAY:
                member.way = self.get_way(member.id)