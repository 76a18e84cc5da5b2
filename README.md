# imposm

Building blocks for importing OpenStreetMap data: on-disk caches for
nodes, ways, relations and coordinates, reverse reference indexes for
diff updates, compact binary encodings of OSM elements, lists of map
tiles to expire after an update, and parsing of command line options
and JSON configuration files.

Only the standard library is needed.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## What is inside

- `imposm.element` – the element types `Node`, `Way`, `Relation`,
  `Member` and `MemberType`, and `IDRefs`, an id with a sorted list of
  unique references (`add`, `delete`).
- `imposm.binary.tags` – tag compression: `tags_as_array` and
  `tags_from_array`. Common tags such as `highway=residential` become a
  single character, common keys such as `name` a one-character prefix.
  A damaged array raises `CorruptCacheError`.
- `imposm.binary.varint` – `encode_uvarint`, `encode_varint`,
  `decode_uvarint`, `decode_varint`; bad data raises `VarintError`.
- `imposm.binary.serialize` – `marshal_node`, `marshal_way`,
  `marshal_relation` and their `unmarshal_*` counterparts, plus
  `coord_to_int`, `int_to_coord`, `delta_pack` and `delta_unpack`.
- `imposm.binary.deltacoords` – `marshal_delta_nodes` and
  `unmarshal_delta_nodes` for sorted lists of coordinates.
- `imposm.binary.idrefs` – `marshal_idrefs_bunch` and
  `unmarshal_idrefs_bunch` for bunches of `IDRefs`.
- `imposm.cache.options` – `default_cache_options()` and
  `load_cache_options(path)`. Without a path the JSON file named by the
  `IMPOSM_CACHE_CONFIG` environment variable is read, if it is set.
- `imposm.cache.store` – `KeyValueStore`, an ordered byte key-value
  store kept in a SQLite file inside a directory, with `id_to_key`,
  `id_from_key` and `NotFoundError`. Of the cache options only
  `cache_size_m` and `block_size_k` have an effect on it.
- `imposm.cache.nodes`, `imposm.cache.ways`, `imposm.cache.relations` –
  `NodesCache`, `WaysCache` and `RelationsCache`. Lookups of missing
  elements raise `NotFoundError`; iterating a cache yields its elements
  in id order.
- `imposm.cache.delta` – `DeltaCoordsCache`, which stores coordinates
  in delta-encoded bunches with an in-memory LRU cache of bunches, and
  fills `Way.nodes` from `Way.refs` with `fill_way`.
- `imposm.cache.diff` – `CoordsRefIndex`, `CoordsRelRefIndex` and
  `WaysRefIndex`, which record which ways and relations reference a
  node or way, and `DiffCache`, which opens all three below one
  directory. With `set_linear_import(True)` additions are buffered and
  written in batches; lookups and deletions then raise `RuntimeError`.
- `imposm.cache.osm` – `OSMCache`, which opens the coordinates, nodes,
  ways and relations caches below one directory.
- `imposm.expire` – `TileList` collects the tiles touched by changed
  points, lines and polygons; `flush()` writes them to
  `<out>/<YYYYMMDD>/<HHMMSS.mmm>.tiles` and returns the path.
  `expire_projected_node` and `expire_projected_nodes` accept
  coordinates in EPSG:4326 or EPSG:3857.
- `imposm.config` – `parse_import`, `parse_diff_import` and
  `parse_run_import` turn command line arguments into `ImportOptions`
  or `BaseOptions`, filled in from the JSON file given with `-config`.
  Invalid options raise `ConfigError`, whose `errors` lists the
  problems.

## Example

```python
from imposm.element import IDRefs
from imposm.binary.tags import tags_as_array, tags_from_array

refs = IDRefs(id=1000)
refs.add(10)
refs.add(1)
refs.add(10)
print(refs.refs)  # [1, 10]

encoded = tags_as_array({"name": "Main Street", "highway": "residential"})
print(tags_from_array(encoded))  # {'name': 'Main Street', 'highway': 'residential'}
```

Using the caches:

```python
from imposm.cache.osm import OSMCache
from imposm.element import Node, Way

with OSMCache("/tmp/imposm") as cache:
    cache.open()
    cache.coords.put_coords([Node(id=1, long=8.3, lat=53.2), Node(id=2, long=8.4, lat=53.3)])
    cache.ways.put_way(Way(id=100, tags={"highway": "track"}, refs=[1, 2]))
    way = cache.ways.get_way(100)
    cache.coords.fill_way(way)
    print([(n.long, n.lat) for n in way.nodes])
```

## Inspecting a cache

The `imposm-query-cache` command looks up nodes, ways and relations in
a cache directory and prints them as indented JSON:

```
imposm-query-cache -cachedir /tmp/imposm -way 100,200
imposm-query-cache -cachedir /tmp/imposm -rel 5 -full
imposm-query-cache -cachedir /tmp/imposm -node 1000 -deps
```

`-full` follows relations into their member ways and ways into their
nodes; `-deps` shows the ways and relations that reference the
requested elements. The two options cannot be combined. Missing
elements are shown as `null`. The default cache directory is
`/tmp/imposm`.

## What this package does not do

It does not read OSM data files or change files, build geometries, or
write to a database. The options for the import, diff and run commands
can be parsed with `imposm.config`, but the package has no command that
carries them out; `imposm-query-cache` is its only command.