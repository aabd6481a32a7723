"""Per-database local caches backed by in-memory or SQLite key-value stores."""

from __future__ import annotations

import logging
import posixpath
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

IN_MEMORY_DIRECTORY = ":memory:"
_SQLITE_FILENAME = "store.sqlite"


class _HasRootAndPath(Protocol):
    root: object
    path: str


def _join(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


def _normalize_key(key: str) -> str:
    cleaned = posixpath.normpath("/" + key)
    return "/" + cleaned.lstrip("/")


class MemoryDatastore:
    """A key-value store kept in memory."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("datastore is closed")

    def get(self, key: str) -> bytes:
        with self._lock:
            self._check_open()
            try:
                return self._data[_normalize_key(key)]
            except KeyError:
                raise KeyError(key) from None

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._check_open()
            self._data[_normalize_key(key)] = bytes(value)

    def has(self, key: str) -> bool:
        with self._lock:
            self._check_open()
            return _normalize_key(key) in self._data

    def delete(self, key: str) -> None:
        with self._lock:
            self._check_open()
            self._data.pop(_normalize_key(key), None)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._data.clear()

    def __enter__(self) -> MemoryDatastore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class SqliteDatastore:
    """A key-value store persisted in a SQLite file inside a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            str(self.directory / _SQLITE_FILENAME), check_same_thread=False
        )
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS entries (key TEXT PRIMARY KEY, value BLOB NOT NULL)"
            )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("datastore is closed")
        return self._conn

    def get(self, key: str) -> bytes:
        with self._lock:
            row = self._connection().execute(
                "SELECT value FROM entries WHERE key = ?", (_normalize_key(key),)
            ).fetchone()
        if row is None:
            raise KeyError(key)
        return bytes(row[0])

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
                    (_normalize_key(key), bytes(value)),
                )

    def has(self, key: str) -> bool:
        with self._lock:
            row = self._connection().execute(
                "SELECT 1 FROM entries WHERE key = ?", (_normalize_key(key),)
            ).fetchone()
        return row is not None

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute("DELETE FROM entries WHERE key = ?", (_normalize_key(key),))

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> SqliteDatastore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class _ManagedDatastore:
    """A datastore that unregisters itself from its cache when closed."""

    def __init__(self, store, manager: LevelDownCache, key_path: str):
        self._store = store
        self._manager = manager
        self._key_path = key_path
        self._closed = False

    def get(self, key: str) -> bytes:
        return self._store.get(key)

    def put(self, key: str, value: bytes) -> None:
        self._store.put(key, value)

    def has(self, key: str) -> bool:
        return self._store.has(key)

    def delete(self, key: str) -> None:
        self._store.delete(key)

    def close(self) -> None:
        with self._manager._lock:
            if self._closed:
                return
            self._closed = True
            self._manager._caches.pop(self._key_path, None)
            self._store.close()

    def __enter__(self) -> _ManagedDatastore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def datastore_key(directory: str, db_address: _HasRootAndPath) -> str:
    """Return the cache location for a database under a directory."""
    return _join(str(directory), _join(str(db_address.root), db_address.path))


class LevelDownCache:
    """Hands out one datastore per database and directory."""

    def __init__(self, logger: logging.Logger | None = None):
        self._lock = threading.RLock()
        self._caches: dict[str, _ManagedDatastore] = {}
        self._logger = logger or logging.getLogger(__name__)

    def load(self, directory: str, db_address: _HasRootAndPath) -> _ManagedDatastore:
        """Open, or return the already open, cache of a database."""
        key_path = datastore_key(directory, db_address)
        with self._lock:
            cached = self._caches.get(key_path)
            if cached is not None:
                return cached
            self._logger.debug("opening cache db %s", key_path)
            if directory == IN_MEMORY_DIRECTORY:
                store = MemoryDatastore()
            else:
                store = SqliteDatastore(key_path)
            managed = _ManagedDatastore(store, self, key_path)
            self._caches[key_path] = managed
            return managed

    def close(self) -> None:
        with self._lock:
            caches = list(self._caches.values())
        for cache in caches:
            cache.close()

    def destroy(self, directory: str, db_address: _HasRootAndPath) -> None:
        """Close a database's cache and remove its files."""
        key_path = datastore_key(directory, db_address)
        with self._lock:
            cached = self._caches.get(key_path)
            if cached is not None:
                cached.close()
            if directory != IN_MEMORY_DIRECTORY:
                try:
                    shutil.rmtree(key_path)
                except FileNotFoundError:
                    pass
                except OSError as err:
                    raise OSError(f"unable to delete datastore: {err}") from err