"""Disk-based artifact caching for modcache.

This package provides :class:`DiskCache`, the grow-only store behind the
server. Each module proxy artifact is kept as one plain file whose path
mirrors the request path, so the cache directory can be inspected,
rsynced, or pruned with ordinary tools while the server is running.

Writes are atomic (temp file, fsync, rename) and guarded by a single
process-wide :class:`ReadWriteLock`. Streaming writes go through
:class:`CacheWriter`.
"""

from modcache.cache.lock import ReadWriteLock
from modcache.cache.store import CacheWriter, DiskCache

__all__ = ["CacheWriter", "DiskCache", "ReadWriteLock"]
