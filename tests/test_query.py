import json

import pytest

from imposm.cache.diff import DiffCache
from imposm.cache.options import ENV_VAR, default_cache_options
from imposm.cache.osm import OSMCache
from imposm.cache.query import (
    collect_nodes,
    collect_relations,
    collect_ways,
    main,
    query,
    split_ids,
)
from imposm.element import Member, MemberType, Node, Relation, Way


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    options = default_cache_options()
    with OSMCache(tmp_path, options) as osm_cache:
        osm_cache.open()
        osm_cache.coords.put_coords([Node(id=i, long=8.0, lat=53.0) for i in (10, 11, 12)])
        osm_cache.nodes.put_node(Node(id=10, tags={"amenity": "bench"}, long=8.0, lat=53.0))
        osm_cache.ways.put_way(Way(id=100, tags={"highway": "residential"}, refs=[10, 11, 12]))
        osm_cache.relations.put_relation(
            Relation(
                id=1000,
                tags={"type": "multipolygon"},
                members=[Member(id=100, type=MemberType.WAY, role="outer")],
            )
        )
    with DiffCache(tmp_path, options) as diff_cache:
        diff_cache.open()
        diff_cache.coords.add_from_way(Way(id=100, nodes=[Node(id=i) for i in (10, 11, 12)]))
        diff_cache.ways.add_from_members(1000, [Member(id=100, type=MemberType.WAY, role="outer")])
    return tmp_path


@pytest.fixture
def caches(cache_dir):
    with OSMCache(cache_dir) as osm_cache, DiffCache(cache_dir) as diff_cache:
        osm_cache.open()
        diff_cache.open()
        yield osm_cache, diff_cache


def test_split_ids():
    assert split_ids("1,2,-3") == [1, 2, -3]


@pytest.mark.parametrize("text", ["1,x", "", "1,,2", "99999999999999999999"])
def test_split_ids_invalid(text):
    with pytest.raises(ValueError):
        split_ids(text)


def test_collect_nodes_prefers_tagged_nodes(caches):
    osm_cache, diff_cache = caches
    nodes = collect_nodes(osm_cache, diff_cache, [10, 11, 99], False)
    assert nodes["10"]["tags"] == {"amenity": "bench"}
    assert nodes["11"]["tags"] == {}
    assert nodes["11"]["long"] == pytest.approx(8.0, abs=1e-6)
    assert nodes["11"]["lat"] == pytest.approx(53.0, abs=1e-6)
    assert nodes["99"] is None
    assert "ways" not in nodes["10"]


def test_collect_ways_recurse(caches):
    osm_cache, diff_cache = caches
    ways = collect_ways(osm_cache, diff_cache, [100, 5], True, False)
    assert ways["100"]["refs"] == [10, 11, 12]
    assert set(ways["100"]["nodes"]) == {"10", "11", "12"}
    assert "relations" not in ways["100"]
    assert ways["5"] is None


def test_collect_ways_deps(caches):
    osm_cache, diff_cache = caches
    ways = collect_ways(osm_cache, diff_cache, [100], False, True)
    relation = ways["100"]["relations"]["1000"]
    assert relation["members"] == [{"id": 100, "type": "way", "role": "outer"}]
    assert relation["tags"] == {"type": "multipolygon"}
    assert "nodes" not in ways["100"]


def test_collect_relations_recurse(caches):
    osm_cache, _ = caches
    relations = collect_relations(osm_cache, [1000, 1], True)
    assert relations["1000"]["ways"]["100"]["nodes"]["12"]["id"] == 12
    assert relations["1"] is None


def test_collect_relations_without_recurse(caches):
    osm_cache, _ = caches
    relations = collect_relations(osm_cache, [1000], False)
    assert "ways" not in relations["1000"]
    assert relations["1000"]["id"] == 1000


def test_collect_nodes_deps(caches):
    osm_cache, diff_cache = caches
    nodes = collect_nodes(osm_cache, diff_cache, [11], True)
    way = nodes["11"]["ways"]["100"]
    assert way["relations"]["1000"]["id"] == 1000


def test_query_returns_requested_sections(cache_dir):
    result = query(["-cachedir", str(cache_dir), "-way", "100", "-node", "10,11"])
    assert set(result) == {"ways", "nodes"}
    assert set(result["nodes"]) == {"10", "11"}
    assert result["ways"]["100"]["tags"] == {"highway": "residential"}


def test_query_full_and_deps_conflict(cache_dir):
    with pytest.raises(ValueError, match="cannot use -full and -deps option together"):
        query(["-cachedir", str(cache_dir), "-full", "-deps", "-way", "100"])


def test_query_without_args_exits():
    with pytest.raises(SystemExit) as exc_info:
        query([])
    assert exc_info.value.code == 1


def test_main_prints_json(cache_dir, capsys):
    assert main(["-cachedir", str(cache_dir), "-rel", "1000", "-full"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed == query(["-cachedir", str(cache_dir), "-rel", "1000", "-full"])


def test_main_reports_invalid_ids(cache_dir, capsys):
    assert main(["-cachedir", str(cache_dir), "-node", "abc"]) == 1
    assert "invalid id" in capsys.readouterr().err