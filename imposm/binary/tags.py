"""Compact serialization of tags into a flat list of strings.

Common tags such as building=yes are stored as a single character from the
Unicode Private Use Area (U+E000..U+F8FF). The most common keys with
variable values are stored as an ASCII control character (0x01..0x1f)
followed by the value. Keys that would be mistaken for either encoding are
prefixed with the replacement character U+FFFD.
"""

from __future__ import annotations

from collections.abc import Mapping


class CorruptCacheError(Exception):
    """Raised when a serialized tag array cannot be decoded."""


_MIN_CODE_POINT = 0xE000
_MAX_CODE_POINT = 0xF8FF
_MAX_KEY_CODE_POINT = 31
_ESCAPE = "\ufffd"

# Do not edit, remove or reorder any entries: their positions define the
# stored encoding.
_COMMON_KEYS = (
    "name",
    "addr:street",
    "addr:place",
    "addr:city",
    "addr:postcode",
    "addr:housenumber",
)

_COMMON_TAGS = (
    # most used tags for ways
    ("building", "yes"),
    ("highway", "residential"),
    ("highway", "service"),
    ("wall", "no"),
    ("highway", "unclassified"),
    ("waterway", "stream"),
    ("highway", "track"),
    ("natural", "water"),
    ("oneway", "yes"),
    ("highway", "footway"),
    ("highway", "tertiary"),
    ("access", "private"),
    ("highway", "path"),
    ("highway", "secondary"),
    ("landuse", "forest"),
    ("building", "house"),
    ("bridge", "yes"),
    ("surface", "asphalt"),
    ("natural", "wood"),
    ("foot", "yes"),
    ("landuse", "residential"),
    ("surface", "paved"),
    ("highway", "primary"),
    ("surface", "unpaved"),
    ("landuse", "grass"),
    ("building", "residential"),
    ("service", "parking_aisle"),
    ("oneway", "no"),
    ("railway", "rail"),
    ("bicycle", "yes"),
    ("service", "driveway"),
    ("amenity", "parking"),
    ("area", "yes"),
    ("barrier", "fence"),
    ("tracktype", "grade2"),
    ("natural", "coastline"),
    ("tracktype", "grade3"),
    ("intermittent", "yes"),
    ("landuse", "farmland"),
    ("building", "hut"),
    ("boundary", "administrative"),
    ("lit", "yes"),
    ("highway", "cycleway"),
    ("landuse", "meadow"),
    ("waterway", "river"),
    ("natural", "wetland"),
    ("highway", "trunk"),
    ("surface", "gravel"),
    ("tracktype", "grade1"),
    ("barrier", "wall"),
    ("building", "garage"),
    ("highway", "living_street"),
    ("highway", "motorway"),
    ("tracktype", "grade4"),
    ("landuse", "farm"),
    ("leisure", "pitch"),
    ("surface", "ground"),
    ("tunnel", "yes"),
    ("highway", "motorway_link"),
    ("bicycle", "no"),
    ("highway", "road"),
    ("natural", "scrub"),
    ("highway", "steps"),
    ("foot", "designated"),
    ("waterway", "ditch"),
    ("admin_level", "8"),
    ("tracktype", "grade5"),
    ("access", "yes"),
    ("building", "apartments"),
    ("leisure", "swimming_pool"),
    ("junction", "roundabout"),
    ("highway", "pedestrian"),
    ("barrier", "hedge"),
    ("bicycle", "designated"),
    ("leisure", "park"),
    ("service", "alley"),
    ("landuse", "farmyard"),
    ("building", "industrial"),
    ("waterway", "riverbank"),
    ("building", "roof"),
    ("surface", "dirt"),
    ("waterway", "drain"),
    ("surface", "grass"),
    ("amenity", "school"),
    ("power", "line"),
    ("landuse", "industrial"),
    ("landuse", "reservoir"),
    ("water", "intermittent"),
    ("highway", "trunk_link"),
    ("segregated", "no"),
    ("horse", "no"),
    ("wood", "deciduous"),
    ("highway", "primary_link"),
    ("foot", "no"),
    ("lit", "no"),
    ("surface", "concrete"),
    ("building", "garages"),
    ("amenity", "place_of_worship"),
    ("religion", "christian"),
    ("waterway", "canal"),
    ("landuse", "orchard"),
    ("surface", "paving_stones"),
    ("leisure", "garden"),
    ("service", "spur"),
    ("living_street", "yes"),
    ("access", "permissive"),
    ("sport", "soccer"),
    ("frequency", "0"),
    ("landuse", "cemetery"),
    ("wood", "mixed"),
    ("motorcar", "no"),
    ("access", "no"),
    ("man_made", "pier"),
    ("oneway", "-1"),
    ("sport", "tennis"),
    ("noexit", "yes"),
    ("service", "yard"),
    ("wood", "coniferous"),
    ("natural", "cliff"),
    ("leisure", "playground"),
    ("cycleway", "lane"),
    ("surface", "cobblestone"),
    ("landuse", "vineyard"),
    ("frequency", "16.7"),
    # most used tags for nodes
    ("power", "tower"),
    ("natural", "tree"),
    ("highway", "bus_stop"),
    ("power", "pole"),
    ("place", "locality"),
    ("highway", "turning_circle"),
    ("highway", "crossing"),
    ("place", "village"),
    ("place", "hamlet"),
    ("highway", "traffic_signals"),
    ("barrier", "gate"),
    ("amenity", "bench"),
    ("man_made", "survey_point"),
    ("amenity", "restaurant"),
    ("natural", "peak"),
    ("railway", "level_crossing"),
    ("type", "broad_leaved"),
    ("highway", "street_lamp"),
    ("tourism", "information"),
    ("wheelchair", "yes"),
    ("building", "entrance"),
    ("public_transport", "stop_position"),
    ("amenity", "fuel"),
    ("barrier", "bollard"),
    ("amenity", "post_box"),
    ("natural", "rock"),
    ("shelter", "yes"),
    ("emergency", "fire_hydrant"),
    ("public_transport", "platform"),
    ("amenity", "grave_yard"),
    ("shop", "convenience"),
    ("power", "generator"),
    ("shop", "supermarket"),
    ("amenity", "bank"),
    ("amenity", "fast_food"),
    ("amenity", "cafe"),
    # most used tags for relations
    ("type", "multipolygon"),
    ("type", "route"),
    ("type", "restriction"),
    ("type", "boundary"),
    ("type", "site"),
    ("type", "associatedStreet"),
)


def _build_tag_tables() -> tuple[dict[str, dict[str, str]], dict[str, tuple[str, str]]]:
    tag_to_char: dict[str, dict[str, str]] = {}
    char_to_tag: dict[str, tuple[str, str]] = {}
    for offset, (key, value) in enumerate(_COMMON_TAGS):
        code = _MIN_CODE_POINT + offset
        if code > _MAX_CODE_POINT:
            raise ValueError("all code points used")
        values = tag_to_char.setdefault(key, {})
        if value in values:
            raise ValueError(f"duplicate entry for tag code points: {key} {value}")
        values[value] = chr(code)
        char_to_tag[chr(code)] = (key, value)
    return tag_to_char, char_to_tag


def _build_key_tables() -> tuple[dict[str, str], dict[str, str]]:
    if len(_COMMON_KEYS) > _MAX_KEY_CODE_POINT:
        raise ValueError("all key code points used")
    key_to_char = {key: chr(i) for i, key in enumerate(_COMMON_KEYS, start=1)}
    char_to_key = {char: key for key, char in key_to_char.items()}
    return key_to_char, char_to_key


_TAG_TO_CHAR, _CHAR_TO_TAG = _build_tag_tables()
_KEY_TO_CHAR, _CHAR_TO_KEY = _build_key_tables()
_NEXT_CODE_POINT = _MIN_CODE_POINT + len(_COMMON_TAGS)


def tag_code_point(key: str, value: str) -> str | None:
    """Return the single-character encoding of key=value, or None."""
    return _TAG_TO_CHAR.get(key, {}).get(value)


def _needs_escape(key: str) -> bool:
    if not key:
        return False
    code = ord(key[0])
    return code < 32 or _MIN_CODE_POINT <= code <= _MAX_CODE_POINT or key[0] == _ESCAPE


def append_tag(arr: list[str], key: str, value: str) -> list[str]:
    """Append the encoding of one tag to arr and return arr."""
    encoded = tag_code_point(key, value)
    if encoded is not None:
        arr.append(encoded)
        return arr
    key_char = _KEY_TO_CHAR.get(key)
    if key_char is not None:
        arr.append(key_char + value)
        return arr
    if _needs_escape(key):
        key = _ESCAPE + key
    arr.extend((key, value))
    return arr


def tags_as_array(tags: Mapping[str, str] | None) -> list[str]:
    """Encode a tag mapping into a flat list of strings."""
    result: list[str] = []
    if not tags:
        return result
    for key, value in tags.items():
        append_tag(result, key, value)
    return result


def tags_from_array(arr: list[str]) -> dict[str, str]:
    """Decode a flat list of strings produced by tags_as_array."""
    result: dict[str, str] = {}
    items = iter(arr)
    for item in items:
        first = item[:1]
        if first and ord(first) >= 0x800:
            if first == _ESCAPE:
                result[item[1:]] = _next_value(items)
                continue
            if _MIN_CODE_POINT <= ord(first) < _NEXT_CODE_POINT:
                tag = _CHAR_TO_TAG.get(first)
                if tag is None:
                    raise CorruptCacheError("missing tag for code point")
                result[tag[0]] = tag[1]
                continue
        elif first and ord(first) < 32:
            result[_CHAR_TO_KEY.get(first, "")] = item[1:]
            continue
        result[item] = _next_value(items)
    return result


def _next_value(items) -> str:
    try:
        return next(items)
    except StopIteration:
        raise CorruptCacheError(
            "internal cache corrupt: tag key without value"
        ) from None