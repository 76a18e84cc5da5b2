"""Persistent ordered key-value store used by the OSM caches."""

from __future__ import annotations

import os
import sqlite3
import struct
import threading
from collections.abc import Iterable, Iterator

from imposm.cache.options import CacheOptions

SKIP = -1
"""Element ID marking an element that must not be cached."""

_MASK64 = (1 << 64) - 1
_BATCH = 1000


class NotFoundError(LookupError):
    """Raised when an element is not in the cache."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


def id_to_key(id: int) -> bytes:
    """Encode an ID as an 8-byte big-endian key.

    Non-negative IDs keep their numeric order as byte strings.
    """
    return struct.pack(">Q", id & _MASK64)


def id_from_key(buf: bytes) -> int:
    """Decode a key written by id_to_key."""
    return struct.unpack(">q", bytes(buf[:8]))[0]


class KeyValueStore:
    """A directory holding byte keys and values, iterated in key order.

    Of the store options only cache_size_m and block_size_k have an effect;
    the others tune features this store does not have.
    """

    _FILENAME = "store.sqlite"

    def __init__(self, path: str | os.PathLike[str], options: CacheOptions | None = None) -> None:
        self.path = os.fspath(path)
        self.options = options if options is not None else CacheOptions()
        os.makedirs(self.path, exist_ok=True)
        self._lock = threading.Lock()
        self._db: sqlite3.Connection | None = sqlite3.connect(
            os.path.join(self.path, self._FILENAME),
            isolation_level=None,
            check_same_thread=False,
        )
        self._configure()
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS kv "
            "(key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"
        )

    def _configure(self) -> None:
        db = self._connection()
        db.execute("PRAGMA synchronous = OFF")
        if self.options.cache_size_m > 0:
            db.execute(f"PRAGMA cache_size = {-int(self.options.cache_size_m) * 1024}")
        page_size = self.options.block_size_k * 1024
        if 512 <= page_size <= 65536 and page_size & (page_size - 1) == 0:
            db.execute(f"PRAGMA page_size = {int(page_size)}")

    def _connection(self) -> sqlite3.Connection:
        if self._db is None:
            raise ValueError(f"store {self.path!r} is closed")
        return self._db

    def get(self, key: bytes) -> bytes | None:
        """Return the value for key, or None if it is missing."""
        with self._lock:
            row = self._connection().execute(
                "SELECT value FROM kv WHERE key = ?", (bytes(key),)
            ).fetchone()
        return bytes(row[0]) if row is not None else None

    def put(self, key: bytes, value: bytes) -> None:
        """Store value under key, replacing any previous value."""
        with self._lock:
            self._connection().execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (bytes(key), bytes(value)),
            )

    def delete(self, key: bytes) -> None:
        """Remove key; a missing key is not an error."""
        with self._lock:
            self._connection().execute("DELETE FROM kv WHERE key = ?", (bytes(key),))

    def put_many(self, items: Iterable[tuple[bytes, bytes]]) -> None:
        """Store all key/value pairs atomically."""
        rows = [(bytes(key), bytes(value)) for key, value in items]
        with self._lock:
            db = self._connection()
            db.execute("BEGIN")
            try:
                db.executemany("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", rows)
            except BaseException:
                db.execute("ROLLBACK")
                raise
            db.execute("COMMIT")

    def items(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield all key/value pairs in ascending key order."""
        last: bytes | None = None
        while True:
            with self._lock:
                db = self._connection()
                if last is None:
                    rows = db.execute(
                        "SELECT key, value FROM kv ORDER BY key LIMIT ?", (_BATCH,)
                    ).fetchall()
                else:
                    rows = db.execute(
                        "SELECT key, value FROM kv WHERE key > ? ORDER BY key LIMIT ?",
                        (last, _BATCH),
                    ).fetchall()
            for key, value in rows:
                yield bytes(key), bytes(value)
            if len(rows) < _BATCH:
                return
            last = bytes(rows[-1][0])

    def close(self) -> None:
        """Close the store. Closing twice is harmless."""
        with self._lock:
            if self._db is not None:
                self._db.close()
                self._db = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()