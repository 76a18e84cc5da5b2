"""Cache of node coordinates, grouped into delta-encoded bunches."""

from __future__ import annotations

import bisect
import os
import threading
from collections import OrderedDict
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from itertools import groupby
from operator import attrgetter

from imposm.binary.deltacoords import marshal_delta_nodes, unmarshal_delta_nodes
from imposm.cache.options import CoordsCacheOptions, load_cache_options
from imposm.cache.store import SKIP, KeyValueStore, NotFoundError, id_to_key
from imposm.element import Node, Way

_node_id = attrgetter("id")


def remove_skipped_nodes(nodes: Iterable[Node]) -> list[Node]:
    """Return the nodes without those marked as skipped, in order."""
    return [node for node in nodes if node.id != SKIP]


def _trunc_div(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


@dataclass(eq=False)
class CoordsBunch:
    """Coordinates of neighbouring node IDs, kept sorted by ID."""

    id: int
    coords: list[Node] = field(default_factory=list)
    needs_write: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _index(self, id: int) -> int:
        return bisect.bisect_left(self.coords, id, key=_node_id)

    def get_coord(self, id: int) -> Node:
        """Return a copy of the node with this ID or raise NotFoundError."""
        i = self._index(id)
        if i < len(self.coords) and self.coords[i].id == id:
            node = self.coords[i]
            return replace(node, tags=dict(node.tags))
        raise NotFoundError()

    def delete_coord(self, id: int) -> None:
        """Remove the node with this ID if present."""
        i = self._index(id)
        if i < len(self.coords) and self.coords[i].id == id:
            del self.coords[i]

    def put_coord(self, node: Node) -> None:
        """Insert a single node, replacing a node with the same ID."""
        i = self._index(node.id)
        if i < len(self.coords) and self.coords[i].id == node.id:
            self.coords[i] = node
        else:
            self.coords.insert(i, node)

    def put_coords(self, nodes: Iterable[Node]) -> None:
        """Add many nodes at once; duplicates or updates are not handled."""
        self.coords.extend(nodes)
        self.coords.sort(key=_node_id)


class DeltaCoordsCache(KeyValueStore):
    """Stores node coordinates in bunches, with an LRU cache of bunches in memory."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        options: CoordsCacheOptions | None = None,
    ) -> None:
        if options is None:
            options = load_cache_options().coords
        if options.bunch_size < 1:
            raise ValueError(f"bunch size must be positive, got {options.bunch_size}")
        super().__init__(path, options)
        self.bunch_size = options.bunch_size
        self.capacity = options.bunch_cache_capacity
        self.linear_import = False
        self.read_only = False
        self._table: OrderedDict[int, CoordsBunch] = OrderedDict()
        self._mu = threading.RLock()

    def set_linear_import(self, value: bool) -> None:
        """Optimize for inserting sorted nodes that are not updated later."""
        self.linear_import = bool(value)

    def set_read_only(self, value: bool) -> None:
        """Skip holding bunch locks during lookups when nothing is written."""
        self.read_only = bool(value)

    def flush(self) -> None:
        """Write all modified bunches and empty the in-memory cache."""
        with self._mu:
            for bunch_id, bunch in self._table.items():
                if bunch.needs_write:
                    self._put_coords_packed(bunch_id, bunch.coords)
            self._table.clear()

    def close(self) -> None:
        """Flush pending bunches and close the store."""
        if self._db is not None:
            self.flush()
        super().close()

    def get_coord(self, id: int) -> Node:
        """Return the node with this ID or raise NotFoundError."""
        bunch = self._get_bunch(self._bunch_id(id))
        if self.read_only:
            bunch.lock.release()
            return bunch.get_coord(id)
        try:
            return bunch.get_coord(id)
        finally:
            bunch.lock.release()

    def delete_coord(self, id: int) -> None:
        """Remove the node with this ID."""
        with self._locked_bunch(self._bunch_id(id)) as bunch:
            bunch.delete_coord(id)
            bunch.needs_write = True

    def fill_way(self, way: Way | None) -> None:
        """Set way.nodes from the cached coordinates of way.refs.

        Raises NotFoundError if a referenced node is missing.
        """
        if way is None:
            return
        nodes: list[Node] = []
        bunch: CoordsBunch | None = None
        last_id: int | None = None
        try:
            for ref in way.refs:
                bunch_id = self._bunch_id(ref)
                if bunch_id != last_id:
                    if bunch is not None:
                        bunch.lock.release()
                        bunch = None
                    bunch = self._get_bunch(bunch_id)
                    last_id = bunch_id
                nodes.append(bunch.get_coord(ref))
        finally:
            if bunch is not None:
                bunch.lock.release()
        way.nodes = nodes

    def put_coords(self, nodes: Sequence[Node]) -> None:
        """Store nodes, which must be sorted by ID."""
        nodes = remove_skipped_nodes(nodes)
        if not nodes:
            return
        groups = [
            (bunch_id, list(group))
            for bunch_id, group in groupby(nodes, key=lambda n: self._bunch_id(n.id))
        ]
        total = len(nodes)
        end = 0
        for index, (bunch_id, group) in enumerate(groups):
            end += len(group)
            is_last = index == len(groups) - 1
            if (
                not is_last
                and self.linear_import
                and self.bunch_size < end < total - self.bunch_size
            ):
                # away from the batch boundaries no other batch touches this bunch
                self._put_coords_packed(bunch_id, group)
                continue
            with self._locked_bunch(bunch_id) as bunch:
                if self.linear_import:
                    bunch.put_coords(group)
                else:
                    for node in group:
                        bunch.put_coord(node)
                bunch.needs_write = True

    def check_capacity(self) -> None:
        """Evict least recently used bunches beyond the capacity, writing modified ones."""
        with self._mu:
            while len(self._table) > self.capacity:
                bunch_id, bunch = self._table.popitem(last=False)
                if bunch.needs_write:
                    self._put_coords_packed(bunch_id, bunch.coords)

    def first_ref_is_cached(self, refs: Sequence[int]) -> bool:
        """Return whether the first referenced node is cached."""
        if not refs:
            return False
        try:
            self.get_coord(refs[0])
        except NotFoundError:
            return False
        return True

    def _bunch_id(self, node_id: int) -> int:
        return _trunc_div(node_id, self.bunch_size)

    def _put_coords_packed(self, bunch_id: int, nodes: Sequence[Node]) -> None:
        key = id_to_key(bunch_id)
        if not nodes:
            self.delete(key)
            return
        self.put(key, marshal_delta_nodes(nodes))

    def _get_coords_packed(self, bunch_id: int) -> list[Node]:
        data = self.get(id_to_key(bunch_id))
        if data is None:
            return []
        return unmarshal_delta_nodes(data)

    def _get_bunch(self, bunch_id: int) -> CoordsBunch:
        """Return the bunch with its lock held by the caller."""
        with self._mu:
            bunch = self._table.get(bunch_id)
            needs_get = bunch is None
            if bunch is None:
                bunch = CoordsBunch(bunch_id)
                self._table[bunch_id] = bunch
            else:
                self._table.move_to_end(bunch_id)
            bunch.lock.acquire()
            try:
                self.check_capacity()
            except BaseException:
                bunch.lock.release()
                raise
        if needs_get:
            try:
                bunch.coords = self._get_coords_packed(bunch_id)
            except BaseException:
                bunch.lock.release()
                raise
        return bunch

    @contextmanager
    def _locked_bunch(self, bunch_id: int) -> Iterator[CoordsBunch]:
        bunch = self._get_bunch(bunch_id)
        try:
            yield bunch
        finally:
            bunch.lock.release()