import random

import pytest

from imposm.binary.deltacoords import marshal_delta_nodes, unmarshal_delta_nodes
from imposm.binary.varint import VarintError
from imposm.element import Node


def _random_nodes(count=64, seed=42):
    rng = random.Random(seed)
    offset = rng.randrange(10**10)
    return [
        Node(
            id=offset + rng.randrange(1000),
            long=rng.random() * 360 - 180,
            lat=rng.random() * 180 - 90,
        )
        for _ in range(count)
    ]


def _compare_nodes(a, b):
    assert len(a) == len(b)
    for left, right in zip(a, b):
        assert left.id == right.id
        assert abs(left.long - right.long) <= 1e-7
        assert abs(left.lat - right.lat) <= 1e-7


def test_marshal_delta_coords():
    nodes = _random_nodes()
    _compare_nodes(nodes, unmarshal_delta_nodes(marshal_delta_nodes(nodes)))


def test_sorted_nodes_round_trip():
    nodes = sorted(_random_nodes(seed=7), key=lambda n: n.id)
    result = unmarshal_delta_nodes(marshal_delta_nodes(nodes))
    _compare_nodes(nodes, result)
    assert [n.id for n in result] == sorted(n.id for n in result)


def test_empty_round_trip():
    assert unmarshal_delta_nodes(marshal_delta_nodes([])) == []


def test_decoded_nodes_have_no_tags():
    nodes = [Node(id=5, long=8.3, lat=53.2, tags={"foo": "bar"})]
    result = unmarshal_delta_nodes(marshal_delta_nodes(nodes))
    assert result[0].tags == {}
    assert result[0].id == 5


def test_empty_buffer_raises():
    with pytest.raises(VarintError):
        unmarshal_delta_nodes(b"")


def test_truncated_buffer_raises():
    data = marshal_delta_nodes(_random_nodes(count=4))
    with pytest.raises(VarintError):
        unmarshal_delta_nodes(data[:-1])