"""Tuning options for the key-value stores behind the caches."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, is_dataclass, replace
from typing import Any, TypeVar

ENV_VAR = "IMPOSM_CACHE_CONFIG"


@dataclass(frozen=True)
class CacheOptions:
    """Options for a single store. Zero means the store's own default."""

    cache_size_m: int = 0
    max_open_files: int = 0
    block_restart_interval: int = 0
    write_buffer_size_m: int = 0
    block_size_k: int = 0
    max_file_size_m: int = 0


@dataclass(frozen=True)
class CoordsCacheOptions(CacheOptions):
    """Options for the coords store, including its in-memory bunch cache."""

    bunch_size: int = 0
    bunch_cache_capacity: int = 0


@dataclass(frozen=True)
class OSMCacheOptions:
    """Options for all stores."""

    coords: CoordsCacheOptions = field(default_factory=CoordsCacheOptions)
    ways: CacheOptions = field(default_factory=CacheOptions)
    nodes: CacheOptions = field(default_factory=CacheOptions)
    relations: CacheOptions = field(default_factory=CacheOptions)
    coords_index: CacheOptions = field(default_factory=CacheOptions)
    ways_index: CacheOptions = field(default_factory=CacheOptions)


def _store(cache_size_m, write_buffer_size_m, max_open_files, max_file_size_m, block_restart_interval):
    return {
        "CacheSizeM": cache_size_m,
        "WriteBufferSizeM": write_buffer_size_m,
        "BlockSizeK": 0,
        "MaxOpenFiles": max_open_files,
        "MaxFileSizeM": max_file_size_m,
        "BlockRestartInterval": block_restart_interval,
    }


_DEFAULT_CONFIG: dict[str, Any] = {
    "Coords": {**_store(16, 64, 64, 32, 256), "BunchSize": 32, "BunchCacheCapacity": 8096},
    "Nodes": _store(16, 64, 64, 32, 128),
    "Ways": _store(16, 64, 64, 32, 128),
    "Relations": _store(16, 64, 64, 32, 128),
    "CoordsIndex": _store(32, 128, 256, 8, 256),
    "WaysIndex": _store(16, 64, 64, 8, 128),
}

_T = TypeVar("_T")


def _merge(current: _T, data: Any, path: str) -> _T:
    """Return current with the values of the JSON object data applied.

    Keys match field names case-insensitively without underscores, so both
    CacheSizeM and cachesizem set cache_size_m. Unknown keys and nulls are
    ignored.
    """
    if data is None:
        return current
    if not isinstance(data, dict):
        raise ValueError(f"parsing cache config: {path or 'config'} must be an object")
    by_key = {f.name.replace("_", ""): f.name for f in fields(current)}
    changes: dict[str, Any] = {}
    for key, value in data.items():
        name = by_key.get(key.lower())
        if name is None or value is None:
            continue
        old = changes.get(name, getattr(current, name))
        if is_dataclass(old):
            changes[name] = _merge(old, value, key)
        elif isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"parsing cache config: {key} must be an integer, got {value!r}")
        else:
            changes[name] = value
    return replace(current, **changes)


def default_cache_options() -> OSMCacheOptions:
    """Return the built-in cache options."""
    return _merge(OSMCacheOptions(), _DEFAULT_CONFIG, "")


def load_cache_options(path: str | os.PathLike[str] | None = None) -> OSMCacheOptions:
    """Return the defaults overridden by the JSON file at path.

    Without a path the file named by the IMPOSM_CACHE_CONFIG environment
    variable is used; without either the defaults are returned.
    """
    if path is None:
        path = os.environ.get(ENV_VAR) or None
    options = default_cache_options()
    if path is None:
        return options
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return _merge(options, data, "")