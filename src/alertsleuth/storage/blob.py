"""
storage/blob.py — Binary object storage

Key → bytes store used for large payloads (conversation transcripts) that do
not belong in the metadata repository.

    with storage.put("histories/abc.json") as w:
        w.write(data)

    with storage.get("histories/abc.json") as r:
        data = r.read()

Writes are committed only when the `put` block exits without an exception,
so a failed write never leaves a truncated object behind.
"""

from __future__ import annotations

import io
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from alertsleuth.exceptions import StorageError


class Storage(ABC):

    @abstractmethod
    @contextmanager
    def put(self, key: str) -> Iterator[BinaryIO]:
        ...

    @abstractmethod
    @contextmanager
    def get(self, key: str) -> Iterator[BinaryIO]:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...


class FileStorage(Storage):
    """Objects as files under a root directory. Keys may contain '/'."""

    def __init__(self, root: str | Path):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageError(f"invalid storage key: '{key}'")
        return path

    @contextmanager
    def put(self, key: str) -> Iterator[BinaryIO]:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                yield f
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @contextmanager
    def get(self, key: str) -> Iterator[BinaryIO]:
        path = self._path(key)
        try:
            f = path.open("rb")
        except FileNotFoundError as e:
            raise StorageError(f"object not found: '{key}'") from e
        with f:
            yield f

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def __repr__(self) -> str:
        return f"<FileStorage root={self._root}>"


class MemoryStorage(Storage):
    """Process-local storage. Used by tests and one-shot runs."""

    def __init__(self):
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @contextmanager
    def put(self, key: str) -> Iterator[BinaryIO]:
        buf = io.BytesIO()
        yield buf
        with self._lock:
            self._objects[key] = buf.getvalue()

    @contextmanager
    def get(self, key: str) -> Iterator[BinaryIO]:
        with self._lock:
            data = self._objects.get(key)
        if data is None:
            raise StorageError(f"object not found: '{key}'")
        yield io.BytesIO(data)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)
