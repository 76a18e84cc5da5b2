"""The combined cache of coordinates, nodes, ways and relations."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable

from imposm.cache.delta import DeltaCoordsCache
from imposm.cache.nodes import NodesCache
from imposm.cache.options import OSMCacheOptions, load_cache_options
from imposm.cache.relations import RelationsCache
from imposm.cache.store import NotFoundError
from imposm.cache.ways import WaysCache
from imposm.element import Member, MemberType

_COORDS = "coords"
_NODES = "nodes"
_WAYS = "ways"
_RELATIONS = "relations"
_INSERTED_WAYS = "inserted_ways"
_ALL = (_COORDS, _NODES, _WAYS, _RELATIONS, _INSERTED_WAYS)


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


class OSMCache:
    """All element caches below one directory."""

    def __init__(self, dir: str | os.PathLike[str], options: OSMCacheOptions | None = None) -> None:
        self.dir = os.fspath(dir)
        self.options = options
        self.coords: DeltaCoordsCache | None = None
        self.nodes: NodesCache | None = None
        self.ways: WaysCache | None = None
        self.relations: RelationsCache | None = None
        self.opened = False

    def open(self) -> None:
        """Create the directory and open all caches."""
        options = self.options if self.options is not None else load_cache_options()
        os.makedirs(self.dir, mode=0o755, exist_ok=True)
        try:
            self.coords = DeltaCoordsCache(os.path.join(self.dir, _COORDS), options.coords)
            self.nodes = NodesCache(os.path.join(self.dir, _NODES), options.nodes)
            self.ways = WaysCache(os.path.join(self.dir, _WAYS), options.ways)
            self.relations = RelationsCache(os.path.join(self.dir, _RELATIONS), options.relations)
        except BaseException:
            self.close()
            raise
        self.opened = True

    def close(self) -> None:
        """Close all open caches, flushing pending coordinates."""
        for name in ("coords", "nodes", "ways", "relations"):
            cache = getattr(self, name)
            if cache is not None:
                cache.close()
                setattr(self, name, None)

    def exists(self) -> bool:
        """Return whether the cache is open or any of its parts exists on disk."""
        if self.opened:
            return True
        return any(os.path.lexists(os.path.join(self.dir, name)) for name in _ALL)

    def remove(self) -> None:
        """Close the cache and delete all of its parts from disk."""
        if self.opened:
            self.close()
        for name in _ALL:
            _remove_all(os.path.join(self.dir, name))

    def first_member_is_cached(self, members: Iterable[Member]) -> bool:
        """Return whether the first way or node member is cached.

        Also returns True if there is no way or node member.
        """
        for member in members:
            try:
                if member.type == MemberType.WAY:
                    self.ways.get_way(member.id)
                    return True
                if member.type == MemberType.NODE:
                    self.coords.get_coord(member.id)
                    return True
            except NotFoundError:
                return False
        return True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()