import pytest

from imposm.binary.serialize import (
    coord_to_int,
    delta_pack,
    delta_unpack,
    int_to_coord,
    marshal_node,
    marshal_relation,
    marshal_way,
    unmarshal_node,
    unmarshal_relation,
    unmarshal_way,
)
from imposm.binary.varint import VarintError
from imposm.element import Member, MemberType, Node, Relation, Way


def test_marshal_node():
    node = Node(id=12345, tags={"name": "test", "place": "city"})
    result = unmarshal_node(marshal_node(node))
    assert result.tags["name"] == "test"
    assert result.tags["place"] == "city"
    assert len(result.tags) == 2


def test_marshal_node_coords():
    node = Node(id=1, long=8.30, lat=53.26)
    result = unmarshal_node(marshal_node(node))
    assert abs(result.long - 8.30) < 1e-7
    assert abs(result.lat - 53.26) < 1e-7
    assert result.tags == {}


def test_marshal_way():
    way = Way(id=12345, tags={"name": "test", "highway": "trunk"}, refs=[1, 2, 3, 4])
    result = unmarshal_way(marshal_way(way))
    assert result.tags["name"] == "test"
    assert result.tags["highway"] == "trunk"
    assert len(result.tags) == 2
    assert result.refs == [1, 2, 3, 4]


def test_marshal_way_keeps_input_refs():
    refs = [942374923, 23948234]
    way = Way(id=1234, tags={"foo": "bar"}, refs=list(refs))
    result = unmarshal_way(marshal_way(way))
    assert way.refs == refs
    assert result.refs == refs
    assert result.tags == {"foo": "bar"}


def test_marshal_relation():
    rel = Relation(
        id=12345,
        tags={"name": "test", "landusage": "forest"},
        members=[
            Member(id=123, type=MemberType.WAY, role="outer"),
            Member(id=124, type=MemberType.WAY, role="inner"),
        ],
    )
    result = unmarshal_relation(marshal_relation(rel))
    assert result.tags["name"] == "test"
    assert result.tags["landusage"] == "forest"
    assert len(result.tags) == 2
    assert len(result.members) == 2
    first, second = result.members
    assert (first.id, first.type, first.role) == (123, MemberType.WAY, "outer")
    assert (second.id, second.type, second.role) == (124, MemberType.WAY, "inner")


def test_marshal_relation_mixed_members():
    rel = Relation(
        members=[
            Member(id=-7, type=MemberType.NODE, role=""),
            Member(id=9, type=MemberType.RELATION, role="subarea"),
        ]
    )
    result = unmarshal_relation(marshal_relation(rel))
    assert [(m.id, m.type, m.role) for m in result.members] == [
        (-7, MemberType.NODE, ""),
        (9, MemberType.RELATION, "subarea"),
    ]


def test_delta_pack():
    assert delta_pack([1000, 999, 1001, -8, 1234]) == [1000, -1, 2, -1009, 1242]


def test_delta_unpack():
    assert delta_unpack([1000, -1, 2, -1009, 1242]) == [1000, 999, 1001, -8, 1234]


def test_delta_pack_short_inputs():
    assert delta_pack([]) == []
    assert delta_pack([42]) == [42]
    assert delta_unpack([42]) == [42]


@pytest.mark.parametrize("coord", [-180.0, -90.0, 0.0, 8.3, 53.26, 179.9999])
def test_coord_round_trip(coord):
    assert abs(int_to_coord(coord_to_int(coord)) - coord) < 1e-7


def test_coord_to_int_is_monotonic():
    assert coord_to_int(-180.0) == 0
    assert coord_to_int(0.0) < coord_to_int(0.001) < coord_to_int(10.0)


def test_truncated_way_raises():
    data = marshal_way(Way(refs=[1, 2], tags={"foo": "bar"}))
    with pytest.raises(VarintError):
        unmarshal_way(data[:-1])


def test_trailing_data_raises():
    data = marshal_node(Node(long=1.0, lat=2.0))
    with pytest.raises(VarintError):
        unmarshal_node(data + b"\x00")