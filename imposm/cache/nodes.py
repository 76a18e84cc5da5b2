"""Cache of tagged nodes."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator

from imposm.binary.serialize import marshal_node, unmarshal_node
from imposm.cache.options import CacheOptions, load_cache_options
from imposm.cache.store import SKIP, KeyValueStore, NotFoundError, id_from_key, id_to_key
from imposm.element import Node


class NodesCache(KeyValueStore):
    """Stores nodes with tags, keyed by node ID."""

    def __init__(self, path: str | os.PathLike[str], options: CacheOptions | None = None) -> None:
        super().__init__(path, options if options is not None else load_cache_options().nodes)

    def put_node(self, node: Node) -> None:
        """Store a single node; skipped nodes and nodes without tags are ignored."""
        if node.id == SKIP or node.tags is None:
            return
        self.put(id_to_key(node.id), marshal_node(node))

    def put_nodes(self, nodes: Iterable[Node]) -> int:
        """Store all tagged, non-skipped nodes and return how many were stored."""
        batch = [
            (id_to_key(node.id), marshal_node(node))
            for node in nodes
            if node.id != SKIP and node.tags
        ]
        self.put_many(batch)
        return len(batch)

    def get_node(self, id: int) -> Node:
        """Return the node with this ID or raise NotFoundError."""
        data = self.get(id_to_key(id))
        if data is None:
            raise NotFoundError()
        node = unmarshal_node(data)
        node.id = id
        return node

    def delete_node(self, id: int) -> None:
        """Remove the node with this ID."""
        self.delete(id_to_key(id))

    def __iter__(self) -> Iterator[Node]:
        for key, value in self.items():
            node = unmarshal_node(value)
            node.id = id_from_key(key)
            yield node