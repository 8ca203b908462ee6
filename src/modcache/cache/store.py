"""Atomic on-disk artifact store.

Each cache key (a request path such as
``golang.org/x/mod/@v/v0.14.0.zip``) maps to exactly one file under the
cache root, with ``/`` translated to the host path separator. Content is
immutable once written: there is no expiry, revalidation or eviction, and
the directory only grows.

Writes never expose partial content. The payload goes to a dot-prefixed
``.tmp`` sibling of the final path, is flushed and fsynced, and is then
moved into place with a single :func:`os.replace`. Any failure deletes the
temporary file, and earlier content for the key stays untouched.

All filesystem metadata operations (open, exists, rename) happen under one
:class:`~modcache.cache.lock.ReadWriteLock` shared by the whole cache.
Copying bytes into a temporary file happens outside the lock. Temporary
names are unique per writer, so two concurrent misses for the same key
each write their own file and the last rename wins with identical
content. Such misses are not de-duplicated: both fetch from upstream.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import IO, Any, BinaryIO, Optional

from modcache.cache.lock import ReadWriteLock
from modcache.exceptions import NotFoundError, StorageError

TMP_SUFFIX = ".tmp"


class DiskCache:
    """Disk-backed artifact cache rooted at *root*.

    Args:
        root: Cache directory. Created lazily as keys are written.

    Example::

        cache = DiskCache("/var/cache/gomod")
        cache.write("golang.org/x/mod/@v/list", b"v0.1.0\\nv0.2.0\\n")
        cache.read("golang.org/x/mod/@v/list")
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._lock = ReadWriteLock()

    @property
    def root(self) -> Path:
        """The cache root directory."""
        return self._root

    def path_for(self, key: str) -> Path:
        """Return the file path that stores *key*.

        Raises:
            NotFoundError: If the key is empty or would escape the cache
                root (``..`` or empty segments, NUL bytes, native
                separators inside a segment).
        """
        key = key.lstrip("/")
        parts = key.split("/")
        if not key or "\x00" in key or any(_bad_segment(p) for p in parts):
            raise NotFoundError(f"invalid cache key: {key!r}")
        return self._root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        """Return True if an artifact is stored for *key*."""
        path = self.path_for(key)
        with self._lock.read():
            return path.is_file()

    def read(self, key: str) -> bytes:
        """Return the stored bytes for *key*.

        Raises:
            NotFoundError: If nothing is stored for *key*.
            StorageError: If the file exists but cannot be read.
        """
        path = self.path_for(key)
        with self._lock.read():
            try:
                return path.read_bytes()
            except (FileNotFoundError, IsADirectoryError) as exc:
                raise NotFoundError(f"not cached: {key}") from exc
            except OSError as exc:
                raise StorageError(f"failed to read cache entry {key}: {exc}") from exc

    def open(self, key: str) -> BinaryIO:
        """Open the stored file for *key* for streaming.

        The lock is held only while opening. The returned handle keeps
        reading the complete original file even if the key is replaced
        afterwards.

        Raises:
            NotFoundError: If nothing is stored for *key*.
            StorageError: If the file exists but cannot be opened.
        """
        path = self.path_for(key)
        with self._lock.read():
            try:
                return open(path, "rb")
            except (FileNotFoundError, IsADirectoryError) as exc:
                raise NotFoundError(f"not cached: {key}") from exc
            except OSError as exc:
                raise StorageError(f"failed to open cache entry {key}: {exc}") from exc

    def write(self, key: str, data: bytes) -> None:
        """Store *data* for *key* atomically.

        Raises:
            StorageError: If any step fails; no partial file is left behind.
        """
        with self.writer(key) as writer:
            writer.write(data)

    def writer(self, key: str) -> CacheWriter:
        """Start a streaming write for *key*.

        Missing parent directories are created first. The returned
        :class:`CacheWriter` must be committed or aborted; used as a context
        manager it commits on a clean exit and aborts on any exception,
        including task cancellation.

        Raises:
            StorageError: If the directory or temporary file cannot be created.
        """
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file = tempfile.NamedTemporaryFile(
                mode="wb",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=TMP_SUFFIX,
                delete=False,
            )
        except OSError as exc:
            raise StorageError(f"failed to create cache file for {key}: {exc}") from exc
        return CacheWriter(self, key, path, file)

    def stats(self) -> dict[str, Any]:
        """Return the root, the number of stored artifacts, and their total size."""
        entries = 0
        size = 0
        if self._root.is_dir():
            for dirpath, _, filenames in os.walk(self._root):
                for name in filenames:
                    if name.endswith(TMP_SUFFIX):
                        continue
                    entries += 1
                    size += os.path.getsize(os.path.join(dirpath, name))
        return {"directory": str(self._root), "entries": entries, "bytes": size}

    def _replace(self, tmp_path: Path, path: Path) -> None:
        with self._lock.write():
            os.replace(tmp_path, path)


class CacheWriter:
    """An in-progress write to one key.

    Bytes accumulate in a temporary sibling file until :meth:`commit` moves
    it into place. Created by :meth:`DiskCache.writer`.
    """

    def __init__(self, cache: DiskCache, key: str, path: Path, file: IO[bytes]) -> None:
        self._cache = cache
        self._key = key
        self._path = path
        self._file = file
        self._tmp_path = Path(file.name)
        self._closed = False
        self.bytes_written = 0

    @property
    def path(self) -> Path:
        """Final location of the artifact."""
        return self._path

    @property
    def tmp_path(self) -> Path:
        """Temporary file receiving the bytes."""
        return self._tmp_path

    def write(self, chunk: bytes) -> None:
        """Append *chunk* to the temporary file.

        Raises:
            StorageError: On I/O failure (the writer stays open; the caller
                is expected to abort).
        """
        try:
            self._file.write(chunk)
        except OSError as exc:
            raise StorageError(f"failed to write cache file for {self._key}: {exc}") from exc
        self.bytes_written += len(chunk)

    def commit(self) -> None:
        """Flush, fsync and atomically rename the file into place.

        Raises:
            StorageError: If the writer is closed or any step fails; the
                temporary file is removed in that case.
        """
        if self._closed:
            raise StorageError(f"cache writer for {self._key} is already closed")
        self._closed = True
        try:
            self._file.flush()
            os.fsync(self._file.fileno())
            self._file.close()
            self._cache._replace(self._tmp_path, self._path)
        except OSError as exc:
            self._discard()
            raise StorageError(f"failed to commit cache file for {self._key}: {exc}") from exc

    def abort(self) -> None:
        """Discard the temporary file. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._discard()

    def _discard(self) -> None:
        try:
            self._file.close()
        except OSError:
            pass
        try:
            os.unlink(self._tmp_path)
        except OSError:
            pass

    def __enter__(self) -> CacheWriter:
        return self

    def __exit__(self, exc_type: Optional[type[BaseException]], *args: object) -> None:
        if exc_type is not None:
            self.abort()
        elif not self._closed:
            self.commit()


def _bad_segment(segment: str) -> bool:
    if segment in ("", ".", ".."):
        return True
    return os.sep in segment or (os.altsep is not None and os.altsep in segment)
