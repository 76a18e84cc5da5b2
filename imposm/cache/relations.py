"""Cache of relations with their members."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator

from imposm.binary.serialize import marshal_relation, unmarshal_relation
from imposm.cache.options import CacheOptions, load_cache_options
from imposm.cache.store import SKIP, KeyValueStore, NotFoundError, id_from_key, id_to_key
from imposm.element import Relation


class RelationsCache(KeyValueStore):
    """Stores relations keyed by relation ID."""

    def __init__(self, path: str | os.PathLike[str], options: CacheOptions | None = None) -> None:
        super().__init__(path, options if options is not None else load_cache_options().relations)

    def put_relation(self, relation: Relation) -> None:
        """Store a single relation; skipped relations are ignored."""
        if relation.id == SKIP:
            return
        self.put(id_to_key(relation.id), marshal_relation(relation))

    def put_relations(self, relations: Iterable[Relation]) -> None:
        """Store all tagged, non-skipped relations in one batch."""
        self.put_many(
            (id_to_key(rel.id), marshal_relation(rel))
            for rel in relations
            if rel.id != SKIP and rel.tags
        )

    def get_relation(self, id: int) -> Relation:
        """Return the relation with this ID or raise NotFoundError."""
        data = self.get(id_to_key(id))
        if data is None:
            raise NotFoundError()
        relation = unmarshal_relation(data)
        relation.id = id
        return relation

    def delete_relation(self, id: int) -> None:
        """Remove the relation with this ID."""
        self.delete(id_to_key(id))

    def __iter__(self) -> Iterator[Relation]:
        for key, value in self.items():
            relation = unmarshal_relation(value)
            relation.id = id_from_key(key)
            yield relation