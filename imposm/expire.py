"""Lists of map tiles touched by changed geometries."""

from __future__ import annotations

import math
import os
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from imposm.element import Node

_POLE = 6378137 * math.pi
_MERC_BBOX = (
    -20037508.342789244,
    -20037508.342789244,
    20037508.342789244,
    20037508.342789244,
)
_MERC_RES = tuple(2 * 20037508.342789244 / 256 / 2**i for i in range(20))

# fraction of a tile added as padding around a single node
_TILE_PADDING = 0.2
_MAX_BOX_TILES = 500


class _Expireor(Protocol):
    def expire(self, long: float, lat: float) -> None: ...

    def expire_nodes(self, nodes: Sequence[Node], closed: bool) -> None: ...


def _wgs_to_merc(long: float, lat: float) -> tuple[float, float]:
    x = long * _POLE / 180.0
    t = math.tan((90.0 + lat) * math.pi / 360.0)
    y = math.log(t) / math.pi * _POLE if t > 0 else -math.inf
    return x, y


def _merc_to_wgs(x: float, y: float) -> tuple[float, float]:
    long = 180.0 * x / _POLE
    lat = 180.0 / math.pi * (2 * math.atan(math.exp((y / _POLE) * math.pi)) - math.pi / 2)
    return long, lat


def _tile_coord(long: float, lat: float, zoom: int) -> tuple[float, float]:
    x, y = _wgs_to_merc(long, lat)
    size = _MERC_RES[zoom] * 256
    return (x - _MERC_BBOX[0]) / size, (_MERC_BBOX[3] - y) / size


def _u32(value: float) -> int:
    if not math.isfinite(value):
        return 0
    return int(value) & 0xFFFFFFFF


def expire_projected_nodes(expireor: _Expireor, nodes: Sequence[Node], srid: int, closed: bool) -> None:
    """Expire nodes given in EPSG:4326 or EPSG:3857."""
    if srid == 4326:
        expireor.expire_nodes(nodes, closed)
    elif srid == 3857:
        converted = []
        for node in nodes:
            long, lat = _merc_to_wgs(node.long, node.lat)
            converted.append(Node(long=long, lat=lat))
        expireor.expire_nodes(converted, closed)
    else:
        raise ValueError(f"unsupported srid {srid}")


def expire_projected_node(expireor: _Expireor, node: Node, srid: int) -> None:
    """Expire a single node given in EPSG:4326 or EPSG:3857."""
    if srid == 4326:
        expireor.expire(node.long, node.lat)
    elif srid == 3857:
        expireor.expire(*_merc_to_wgs(node.long, node.lat))
    else:
        raise ValueError(f"unsupported srid {srid}")


@dataclass(frozen=True)
class _BBox:
    minx: float
    miny: float
    maxx: float
    maxy: float

    def is_empty(self) -> bool:
        return self == _EMPTY_BBOX


_EMPTY_BBOX = _BBox(sys.float_info.max, sys.float_info.max, -sys.float_info.max, -sys.float_info.max)


def _nodes_bbox(nodes: Sequence[Node]) -> _BBox:
    valid = [node for node in nodes if not (node.lat == 0 and node.long == 0)]
    if not valid:
        return _EMPTY_BBOX
    return _BBox(
        min(node.long for node in valid),
        min(node.lat for node in valid),
        max(node.long for node in valid),
        max(node.lat for node in valid),
    )


def _num_bbox_tiles(box: _BBox, zoom: int) -> int:
    x1, y1 = _tile_coord(box.minx, box.maxy, zoom)
    x2, y2 = _tile_coord(box.maxx, box.miny, zoom)
    count = abs((x2 - x1 + 1) * (y2 - y1 + 1))
    return int(count) if math.isfinite(count) else 0


def _bresenham(x1: float, y1: float, x2: float, y2: float) -> list[tuple[int, int]]:
    tiles: list[tuple[int, int]] = []
    dx = abs(x2 - x1)
    sx = 1.0 if x2 - x1 > 0 else -1.0
    dy = abs(y2 - y1)
    sy = 1.0 if y2 - y1 > 0 else -1.0

    steep = dy > dx
    if steep:
        x1, y1 = y1, x1
        dx, dy = dy, dx
        sx, sy = sy, sx

    e = 2 * dy - dx
    i = 0.0
    while i < dx:
        if steep:
            tiles.append((_u32(y1), _u32(x1)))
        else:
            tiles.append((_u32(x1), _u32(y1)))
        while e >= 0:
            y1 += sy
            e -= 2 * dx
        x1 += sx
        e += 2 * dy
        i += 1
    tiles.append((_u32(x2), _u32(y2)))
    return tiles


class TileList:
    """Collects expired tiles of one zoom level and writes them to files."""

    def __init__(self, zoom: int, out: str | os.PathLike[str] = "") -> None:
        self.zoom = zoom
        self.out = os.fspath(out)
        self._tiles: set[tuple[int, int]] = set()
        self._lock = threading.RLock()

    @property
    def tiles(self) -> frozenset[tuple[int, int]]:
        """The expired tiles as (x, y) pairs."""
        with self._lock:
            return frozenset(self._tiles)

    def expire(self, long: float, lat: float) -> None:
        """Expire the tiles at a single point, padded to neighbouring tiles at borders."""
        tile_x, tile_y = _tile_coord(long, lat, self.zoom)
        xs = range(_u32(tile_x - _TILE_PADDING), _u32(tile_x + _TILE_PADDING) + 1)
        ys = range(_u32(tile_y - _TILE_PADDING), _u32(tile_y + _TILE_PADDING) + 1)
        with self._lock:
            self._tiles.update((x, y) for x in xs for y in ys)

    def expire_nodes(self, nodes: Sequence[Node], closed: bool) -> None:
        """Expire a line, or for closed geometries the whole bbox if it is small."""
        if not nodes:
            return
        if not closed:
            self._expire_line(nodes)
            return
        box = _nodes_bbox(nodes)
        if box.is_empty():
            return
        if _num_bbox_tiles(box, self.zoom) > _MAX_BOX_TILES:
            self._expire_line(nodes)
        else:
            self._expire_box(box)

    def _expire_line(self, nodes: Sequence[Node]) -> None:
        if len(nodes) == 1:
            self.expire(nodes[0].long, nodes[0].lat)
            return
        with self._lock:
            for a, b in zip(nodes, nodes[1:]):
                # nodes missing from the cache are empty
                if (a.long == 0 and a.lat == 0) or (b.long == 0 and b.lat == 0):
                    continue
                x1, y1 = _tile_coord(a.long, a.lat, self.zoom)
                x2, y2 = _tile_coord(b.long, b.lat, self.zoom)
                if int(x1) == int(x2) and int(y1) == int(y2):
                    self._tiles.add((_u32(x1), _u32(y1)))
                else:
                    self._tiles.update(_bresenham(x1, y1, x2, y2))

    def _expire_box(self, box: _BBox) -> None:
        x1, y1 = _tile_coord(box.minx, box.maxy, self.zoom)
        x2, y2 = _tile_coord(box.maxx, box.miny, self.zoom)
        xs = range(_u32(x1), _u32(x2) + 1)
        ys = range(_u32(y1), _u32(y2) + 1)
        with self._lock:
            self._tiles.update((x, y) for x in xs for y in ys)

    def flush(self) -> str | None:
        """Write all tiles to a new file below out and clear the list.

        The file is written under a temporary name and then renamed, so
        readers never see partial files. Returns the path of the file, or
        None if there were no tiles.
        """
        with self._lock:
            if not self._tiles:
                return None
            now = datetime.now(timezone.utc)
            directory = os.path.join(self.out, now.strftime("%Y%m%d"))
            os.makedirs(directory, mode=0o775, exist_ok=True)
            name = f"{now.strftime('%H%M%S')}.{now.microsecond // 1000:03d}.tiles"
            final_path = os.path.join(directory, name)
            temp_path = final_path + "~"
            with open(temp_path, "w", encoding="ascii") as f:
                for x, y in sorted(self._tiles):
                    f.write(f"{self.zoom}/{x}/{y}\n")
            self._tiles = set()
            os.replace(temp_path, final_path)
            return final_path