"""Reverse indices from nodes and ways to the ways and relations using them."""

from __future__ import annotations

import bisect
import os
import shutil
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from operator import attrgetter

from imposm.binary.idrefs import marshal_idrefs_bunch, unmarshal_idrefs_bunch
from imposm.cache.options import CacheOptions, OSMCacheOptions, load_cache_options
from imposm.cache.store import KeyValueStore, id_to_key
from imposm.element import IDRefs, Member, MemberType, Way

BUFFER_SIZE = 64 * 1024
"""Number of bunches collected in linear import mode before they are written."""

_IDS_PER_BUNCH = 64
_ref_id = attrgetter("id")


def _bunch_id(id: int) -> int:
    quotient = abs(id) // _IDS_PER_BUNCH
    return -quotient if id < 0 else quotient


@dataclass
class IDRefBunch:
    """IDRefs of one bunch, kept sorted by ID."""

    id: int
    id_refs: list[IDRefs] = field(default_factory=list)

    def _index(self, id: int) -> int:
        return bisect.bisect_left(self.id_refs, id, key=_ref_id)

    def get(self, id: int) -> IDRefs | None:
        """Return the IDRefs for id, or None."""
        i = self._index(id)
        if i < len(self.id_refs) and self.id_refs[i].id == id:
            return self.id_refs[i]
        return None

    def get_create(self, id: int) -> IDRefs:
        """Return the IDRefs for id, inserting an empty one at its sorted place."""
        i = self._index(id)
        if i < len(self.id_refs) and self.id_refs[i].id == id:
            return self.id_refs[i]
        id_refs = IDRefs(id=id)
        self.id_refs.insert(i, id_refs)
        return id_refs


class IDRefBunches(dict):
    """Bunches keyed by bunch ID."""

    def get_create(self, bunch_id: int, id: int) -> IDRefs:
        """Return the IDRefs for id in the given bunch, creating both as needed."""
        bunch = self.get(bunch_id)
        if bunch is None:
            bunch = IDRefBunch(bunch_id)
            self[bunch_id] = bunch
        return bunch.get_create(id)

    def add(self, bunch_id: int, id: int, ref: int) -> None:
        """Add ref to the references of id."""
        self.get_create(bunch_id, id).add(ref)


def merge_bunch(bunch: list[IDRefs], new_bunch: Iterable[IDRefs]) -> list[IDRefs]:
    """Merge new_bunch into the sorted bunch and return it.

    Refs of IDs already present are added; an entry without refs removes
    the ID. New IDs with refs are inserted at their sorted position.
    """
    for new in new_bunch:
        i = bisect.bisect_left(bunch, new.id, key=_ref_id)
        if i < len(bunch) and bunch[i].id == new.id:
            if not new.refs:
                del bunch[i]
            else:
                for ref in new.refs:
                    bunch[i].add(ref)
        elif new.refs:
            bunch.insert(i, IDRefs(id=new.id, refs=list(new.refs)))
    return bunch


class RefIndex(KeyValueStore):
    """Maps IDs to sorted lists of referencing IDs, stored in bunches of 64 IDs.

    In linear import mode, additions through the add_from_* methods are
    buffered and merged into the store in batches; lookups and deletions
    are not allowed in that mode.
    """

    _default_options = "coords_index"

    def __init__(self, path: str | os.PathLike[str], options: CacheOptions | None = None) -> None:
        if options is None:
            options = getattr(load_cache_options(), self._default_options)
        super().__init__(path, options)
        self.linear_import = False
        self._buffer = IDRefBunches()
        self._buffer_lock = threading.Lock()

    def _require_random_access(self, operation: str) -> None:
        if self.linear_import:
            raise RuntimeError(f"{operation} not supported in linear import mode")

    def _raw(self, key: bytes) -> bytes | None:
        return KeyValueStore.get(self, key)

    def _load(self, key: bytes) -> list[IDRefs]:
        data = self._raw(key)
        return unmarshal_idrefs_bunch(data) if data is not None else []

    def get(self, id):  # type: ignore[override]
        """Return the references of id, or an empty list."""
        self._require_random_access("get")
        for id_refs in self._load(id_to_key(_bunch_id(id))):
            if id_refs.id == id:
                return id_refs.refs
        return []

    def lookup(self, id: int) -> list[int]:
        """Return the references of id, or an empty list."""
        return self.get(id)

    def refs(self, id: int) -> list[int]:
        """Return the references of id."""
        return self.get(id)

    def add(self, id: int, ref: int) -> None:
        """Add ref to the references of id directly in the store."""
        bunch_id = _bunch_id(id)
        key = id_to_key(bunch_id)
        bunch = IDRefBunch(bunch_id, self._load(key))
        bunch.get_create(id).add(ref)
        self.put(key, marshal_idrefs_bunch(bunch.id_refs))

    def delete_ref(self, id: int, ref: int) -> None:
        """Remove ref from the references of id."""
        self._require_random_access("delete")
        key = id_to_key(_bunch_id(id))
        id_refs = self._load(key)
        entry = IDRefBunch(_bunch_id(id), id_refs).get(id)
        if entry is not None:
            entry.delete(ref)
            self.put(key, marshal_idrefs_bunch(id_refs))

    def delete(self, id):  # type: ignore[override]
        """Remove all references of id."""
        self._require_random_access("delete")
        key = id_to_key(_bunch_id(id))
        id_refs = self._load(key)
        entry = IDRefBunch(_bunch_id(id), id_refs).get(id)
        if entry is not None:
            entry.refs = []
            self.put(key, marshal_idrefs_bunch(id_refs))

    def _queue(self, id: int, ref: int) -> None:
        with self._buffer_lock:
            self._buffer.add(_bunch_id(id), id, ref)
            if len(self._buffer) >= BUFFER_SIZE:
                self._write_refs(self._buffer)
                self._buffer = IDRefBunches()

    def _add_ref(self, id: int, ref: int) -> None:
        if self.linear_import:
            self._queue(id, ref)
        else:
            self.add(id, ref)

    def _flush_buffer(self) -> None:
        with self._buffer_lock:
            buffer, self._buffer = self._buffer, IDRefBunches()
            if buffer:
                self._write_refs(buffer)

    def _write_refs(self, bunches: IDRefBunches) -> None:
        items = []
        for bunch_id, bunch in bunches.items():
            key = id_to_key(bunch_id)
            items.append((key, self._load_merge_marshal(key, bunch.id_refs)))
        self.put_many(items)

    def _load_merge_marshal(self, key: bytes, new_bunch: Sequence[IDRefs]) -> bytes:
        data = self._raw(key)
        if data is None:
            merged = list(new_bunch)
        else:
            merged = merge_bunch(unmarshal_idrefs_bunch(data), new_bunch)
        return marshal_idrefs_bunch(merged)

    def flush(self) -> None:
        """Write buffered additions of linear import mode."""
        if self.linear_import:
            self._flush_buffer()

    def close(self) -> None:
        """Write buffered additions and close the store."""
        if self.linear_import and self._db is not None:
            self.set_linear_import(False)
        super().close()

    def set_linear_import(self, value: bool) -> None:
        """Enable or disable buffered writing; disabling writes the buffer."""
        value = bool(value)
        if value == self.linear_import:
            return
        if value:
            self.linear_import = True
        else:
            self._flush_buffer()
            self.linear_import = False


class CoordsRefIndex(RefIndex):
    """Stores which ways reference a node."""

    def add_from_way(self, way: Way) -> None:
        """Record way as referencing each of its nodes."""
        for node in way.nodes:
            self._add_ref(node.id, way.id)

    def delete_from_way(self, way: Way) -> None:
        """Remove way from the references of each of its nodes."""
        self._require_random_access("delete")
        for node in way.nodes:
            self.delete_ref(node.id, way.id)


class CoordsRelRefIndex(RefIndex):
    """Stores which relations reference a node."""

    def add_from_members(self, rel_id: int, members: Iterable[Member]) -> None:
        """Record the relation as referencing its node members."""
        for member in members:
            if member.type == MemberType.NODE:
                self._add_ref(member.id, rel_id)


class WaysRefIndex(RefIndex):
    """Stores which relations reference a way."""

    _default_options = "ways_index"

    def add_from_members(self, rel_id: int, members: Iterable[Member]) -> None:
        """Record the relation as referencing its way members."""
        for member in members:
            if member.type == MemberType.WAY:
                self._add_ref(member.id, rel_id)


_COORDS_INDEX = "coords_index"
_COORDS_REL_INDEX = "coords_rel_index"
_WAYS_INDEX = "ways_index"


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


class DiffCache:
    """The reverse indices needed for applying diffs."""

    def __init__(self, dir: str | os.PathLike[str], options: OSMCacheOptions | None = None) -> None:
        self.dir = os.fspath(dir)
        self.options = options
        self.coords: CoordsRefIndex | None = None
        self.coords_rel: CoordsRelRefIndex | None = None
        self.ways: WaysRefIndex | None = None
        self.opened = False

    def open(self) -> None:
        """Open all indices, creating them if needed."""
        options = self.options if self.options is not None else load_cache_options()
        try:
            self.coords = CoordsRefIndex(os.path.join(self.dir, _COORDS_INDEX), options.coords_index)
            self.coords_rel = CoordsRelRefIndex(
                os.path.join(self.dir, _COORDS_REL_INDEX), options.coords_index
            )
            self.ways = WaysRefIndex(os.path.join(self.dir, _WAYS_INDEX), options.ways_index)
        except BaseException:
            self.close()
            raise
        self.opened = True

    def close(self) -> None:
        """Close all open indices."""
        for name in ("coords", "coords_rel", "ways"):
            index = getattr(self, name)
            if index is not None:
                index.close()
                setattr(self, name, None)

    def flush(self) -> None:
        """Write buffered additions of all indices."""
        for index in (self.coords, self.coords_rel, self.ways):
            if index is not None:
                index.flush()

    def exists(self) -> bool:
        """Return whether the cache is open or any index exists on disk."""
        if self.opened:
            return True
        return any(
            os.path.lexists(os.path.join(self.dir, name))
            for name in (_COORDS_INDEX, _COORDS_REL_INDEX, _WAYS_INDEX)
        )

    def remove(self) -> None:
        """Close the cache and delete all indices from disk."""
        if self.opened:
            self.close()
        for name in (_COORDS_INDEX, _COORDS_REL_INDEX, _WAYS_INDEX):
            _remove_all(os.path.join(self.dir, name))

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()