import os

from imposm.cache.osm import OSMCache
from imposm.element import Member, MemberType, Node, Relation, Way


def test_open_creates_directories(tmp_path):
    cache_dir = tmp_path / "cache"
    cache = OSMCache(cache_dir)
    assert not cache.exists()
    cache.open()
    try:
        assert cache.exists()
        for name in ("coords", "nodes", "ways", "relations"):
            assert os.path.isdir(cache_dir / name)
    finally:
        cache.close()
    assert cache.coords is None
    assert cache.ways is None


def test_data_survives_reopen(tmp_path):
    with OSMCache(tmp_path) as cache:
        cache.open()
        cache.coords.put_coords([Node(id=5, long=8.0, lat=10.0)])
        cache.ways.put_way(Way(id=7, refs=[5, 6], tags={"highway": "track"}))
        cache.nodes.put_node(Node(id=5, tags={"amenity": "bench"}))
        cache.relations.put_relation(
            Relation(id=3, tags={"type": "route"}, members=[Member(id=7, type=MemberType.WAY)])
        )

    with OSMCache(tmp_path) as cache:
        cache.open()
        node = cache.coords.get_coord(5)
        assert abs(node.long - 8.0) < 1e-6
        assert abs(node.lat - 10.0) < 1e-6
        assert cache.ways.get_way(7).refs == [5, 6]
        assert cache.nodes.get_node(5).tags == {"amenity": "bench"}
        assert cache.relations.get_relation(3).members[0].id == 7


def test_first_member_is_cached(tmp_path):
    with OSMCache(tmp_path) as cache:
        cache.open()
        cache.ways.put_way(Way(id=7, refs=[1, 2]))
        cache.coords.put_coords([Node(id=9, long=1.0, lat=2.0)])

        assert cache.first_member_is_cached([Member(id=7, type=MemberType.WAY)])
        assert not cache.first_member_is_cached([Member(id=8, type=MemberType.WAY)])
        assert cache.first_member_is_cached([Member(id=9, type=MemberType.NODE)])
        assert not cache.first_member_is_cached([Member(id=10, type=MemberType.NODE)])
        # only the first way or node member counts
        assert not cache.first_member_is_cached(
            [Member(id=8, type=MemberType.WAY), Member(id=7, type=MemberType.WAY)]
        )
        assert cache.first_member_is_cached(
            [Member(id=3, type=MemberType.RELATION), Member(id=7, type=MemberType.WAY)]
        )
        assert cache.first_member_is_cached([Member(id=3, type=MemberType.RELATION)])
        assert cache.first_member_is_cached([])


def test_remove(tmp_path):
    cache = OSMCache(tmp_path)
    cache.open()
    cache.ways.put_way(Way(id=1, refs=[1]))
    os.makedirs(tmp_path / "inserted_ways")
    cache.remove()
    assert cache.ways is None
    for name in ("coords", "nodes", "ways", "relations", "inserted_ways"):
        assert not os.path.exists(tmp_path / name)
    assert not OSMCache(tmp_path).exists()


def test_exists_with_leftover_part(tmp_path):
    os.makedirs(tmp_path / "inserted_ways")
    assert OSMCache(tmp_path).exists()