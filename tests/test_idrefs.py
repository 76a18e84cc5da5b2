import pytest

from imposm.binary.idrefs import marshal_idrefs_bunch, unmarshal_idrefs_bunch
from imposm.binary.varint import VarintError
from imposm.element import IDRefs


def _bunch():
    return [
        IDRefs(id=123923123, refs=[1213123]),
        IDRefs(id=123923133, refs=[1231237]),
        IDRefs(id=123924123, refs=[912412210, 912412213]),
        IDRefs(id=123924129, refs=[812412213]),
        IDRefs(id=123924130, refs=[91241213]),
        IDRefs(id=123924132, refs=[912412210, 9124213, 212412210]),
    ]


def test_marshal_bunch():
    new_bunch = unmarshal_idrefs_bunch(marshal_idrefs_bunch(_bunch()))
    assert len(new_bunch) == 6
    assert new_bunch[0].id == 123923123 and new_bunch[0].refs[0] == 1213123
    assert new_bunch[1].id == 123923133 and new_bunch[1].refs[0] == 1231237
    assert new_bunch[2].id == 123924123
    assert new_bunch[2].refs == [912412210, 912412213]
    assert new_bunch[5].id == 123924132 and new_bunch[5].refs[2] == 212412210


def test_full_round_trip_equality():
    bunch = _bunch()
    assert unmarshal_idrefs_bunch(marshal_idrefs_bunch(bunch)) == bunch


def test_entries_without_refs_are_kept():
    bunch = [IDRefs(id=1, refs=[]), IDRefs(id=2, refs=[5, 6]), IDRefs(id=3, refs=[])]
    assert unmarshal_idrefs_bunch(marshal_idrefs_bunch(bunch)) == bunch


def test_empty_bunch_round_trip():
    assert unmarshal_idrefs_bunch(marshal_idrefs_bunch([])) == []


def test_empty_buffer_gives_empty_list():
    assert unmarshal_idrefs_bunch(b"") == []


def test_truncated_buffer_raises():
    data = marshal_idrefs_bunch(_bunch())
    with pytest.raises(VarintError):
        unmarshal_idrefs_bunch(data[:-1])