"""The query-cache command: look up cached nodes, ways and relations."""

from __future__ import annotations

import argparse
import json
import re
import sys
from collections.abc import Iterable, Sequence
from typing import Any

from imposm.cache.diff import DiffCache
from imposm.cache.osm import OSMCache
from imposm.cache.store import NotFoundError
from imposm.element import MemberType, Node, Relation, Way

DEFAULT_CACHE_DIR = "/tmp/imposm"

_ID_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


def split_ids(ids: str) -> list[int]:
    """Parse a comma separated list of 64-bit integer IDs."""
    result = []
    for part in ids.split(","):
        if not _ID_RE.fullmatch(part):
            raise ValueError(f"invalid id {part!r}")
        value = int(part)
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise ValueError(f"id {part!r} out of range")
        result.append(value)
    return result


def _node_dict(node: Node) -> dict[str, Any]:
    return {"id": node.id, "tags": dict(node.tags), "long": node.long, "lat": node.lat}


def _way_dict(way: Way) -> dict[str, Any]:
    return {"id": way.id, "tags": dict(way.tags), "refs": list(way.refs)}


def _relation_dict(relation: Relation) -> dict[str, Any]:
    return {
        "id": relation.id,
        "tags": dict(relation.tags),
        "members": [
            {"id": member.id, "type": member.type.name.lower(), "role": member.role}
            for member in relation.members
        ],
    }


def collect_relations(
    osm_cache: OSMCache, ids: Iterable[int], recurse: bool
) -> dict[str, dict[str, Any] | None]:
    """Look up relations; with recurse also their member ways and nodes.

    Missing relations map to None.
    """
    relations: dict[str, dict[str, Any] | None] = {}
    for id in ids:
        try:
            relation = osm_cache.relations.get_relation(id)
        except NotFoundError:
            relations[str(id)] = None
            continue
        entry = _relation_dict(relation)
        if recurse:
            way_ids = [m.id for m in relation.members if m.type == MemberType.WAY]
            ways = collect_ways(osm_cache, None, way_ids, True, False)
            if ways:
                entry["ways"] = ways
        relations[str(id)] = entry
    return relations


def collect_ways(
    osm_cache: OSMCache,
    diff_cache: DiffCache | None,
    ids: Iterable[int],
    recurse: bool,
    deps: bool,
) -> dict[str, dict[str, Any] | None]:
    """Look up ways; with recurse also their nodes, with deps the relations using them.

    Missing ways map to None.
    """
    ways: dict[str, dict[str, Any] | None] = {}
    for id in ids:
        try:
            way = osm_cache.ways.get_way(id)
        except NotFoundError:
            ways[str(id)] = None
            continue
        entry = _way_dict(way)
        if recurse:
            nodes = collect_nodes(osm_cache, None, way.refs, False)
            if nodes:
                entry["nodes"] = nodes
        if deps:
            rel_ids = diff_cache.ways.lookup(id)
            if rel_ids:
                entry["relations"] = collect_relations(osm_cache, rel_ids, False)
        ways[str(id)] = entry
    return ways


def collect_nodes(
    osm_cache: OSMCache,
    diff_cache: DiffCache | None,
    ids: Iterable[int],
    deps: bool,
) -> dict[str, dict[str, Any] | None]:
    """Look up nodes, tagged ones first, then plain coordinates.

    With deps the ways using each node are included. Missing nodes map to None.
    """
    nodes: dict[str, dict[str, Any] | None] = {}
    for id in ids:
        try:
            node = osm_cache.nodes.get_node(id)
        except NotFoundError:
            try:
                node = osm_cache.coords.get_coord(id)
            except NotFoundError:
                nodes[str(id)] = None
                continue
        entry = _node_dict(node)
        if deps:
            way_ids = diff_cache.coords.lookup(id)
            if way_ids:
                entry["ways"] = collect_ways(osm_cache, diff_cache, way_ids, False, True)
        nodes[str(id)] = entry
    return nodes


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imposm query-cache",
        description="Query cache for nodes/ways/relations.",
        allow_abbrev=False,
    )
    parser.add_argument("-node", "--node", default="", help="node")
    parser.add_argument("-way", "--way", default="", help="way")
    parser.add_argument("-rel", "--rel", default="", help="relation")
    parser.add_argument("-full", "--full", action="store_true", help="recurse into relations/ways")
    parser.add_argument("-deps", "--deps", action="store_true", help="show dependent ways/relations")
    parser.add_argument("-cachedir", "--cachedir", default=DEFAULT_CACHE_DIR, help="cache directory")
    return parser


def query(args: Sequence[str]) -> dict[str, Any]:
    """Run a cache query described by command line args and return the result."""
    parser = _parser()
    args = list(args)
    if not args:
        parser.print_usage(sys.stderr)
        raise SystemExit(1)
    opts = parser.parse_args(args)
    if opts.full and opts.deps:
        raise ValueError("cannot use -full and -deps option together")

    rel_ids = split_ids(opts.rel) if opts.rel else None
    way_ids = split_ids(opts.way) if opts.way else None
    node_ids = split_ids(opts.node) if opts.node else None

    result: dict[str, Any] = {}
    with OSMCache(opts.cachedir) as osm_cache, DiffCache(opts.cachedir) as diff_cache:
        osm_cache.open()
        diff_cache.open()
        if rel_ids is not None:
            result["relations"] = collect_relations(osm_cache, rel_ids, opts.full)
        if way_ids is not None:
            result["ways"] = collect_ways(osm_cache, diff_cache, way_ids, opts.full, opts.deps)
        if node_ids is not None:
            result["nodes"] = collect_nodes(osm_cache, diff_cache, node_ids, opts.deps)
    return result


def main(argv: Sequence[str] | None = None) -> int:
    """Print the query result as indented JSON."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        result = query(args)
    except (ValueError, OSError) as exc:
        print(f"[fatal] {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0