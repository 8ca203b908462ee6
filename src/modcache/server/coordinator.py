"""Read-through fetch logic for the four module proxy verbs.

:class:`ModuleFetcher` ties the disk cache to the shared upstream client.
Every verb follows the same sequence:

1. look the key up in the cache (disk I/O runs in a worker thread);
2. on a hit, serve the stored bytes;
3. on a miss, ``GET <upstream>/<key>``;
4. a non-200 answer becomes :class:`~modcache.exceptions.UpstreamStatusError`
   carrying the same status; a network failure becomes
   :class:`~modcache.exceptions.UpstreamTransportError`;
5. ``.info`` bodies must be a JSON object, else
   :class:`~modcache.exceptions.ValidationError` and nothing is cached;
6. the body is persisted. A failed write is logged and the response is
   still served.

``list``, ``.info`` and ``.mod`` are small and buffered in memory, bounded
by the request timeout. ``.zip`` archives are streamed: each chunk goes to
the client and to a :class:`~modcache.cache.CacheWriter` at the same time,
bounded by a separate, longer deadline that covers the header wait and
the whole body. The temporary file is only renamed into place after the
last chunk; an error or a client disconnect deletes it.

There are no retries, and concurrent misses for one key are not merged:
each one fetches from upstream.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO, Optional

import anyio
import anyio.to_thread
import httpx

from modcache.cache import CacheWriter, DiskCache
from modcache.exceptions import (
    NotFoundError,
    StorageError,
    UpstreamStatusError,
    UpstreamTransportError,
    ValidationError,
)
from modcache.models import TransportConfig, Verb
from modcache.output import get_output

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class CachedResponse:
    """A fully buffered artifact ready to be sent."""

    body: bytes
    media_type: str
    cached: bool


@dataclass
class ArchiveStream:
    """A ``.zip`` body delivered chunk by chunk.

    ``content_length`` is the file size on a hit, the upstream
    ``Content-Length`` on a miss, or ``None`` when upstream did not send one.
    """

    chunks: AsyncIterator[bytes]
    content_length: Optional[int]
    cached: bool
    media_type: str = Verb.ZIP.media_type


class ModuleFetcher:
    """Serve module proxy artifacts from the cache, filling misses from upstream.

    Args:
        cache: The artifact store.
        client: Shared upstream client (see :func:`modcache.client.build_client`).
        upstream: Upstream base URL without a trailing slash.
        config: Overall deadlines; defaults to
            :class:`~modcache.models.TransportConfig`.

    Example::

        fetcher = ModuleFetcher(DiskCache("./cache"), client, "https://proxy.golang.org")
        result = await fetcher.info("golang.org/x/mod/@v/v0.14.0.info")
    """

    def __init__(
        self,
        cache: DiskCache,
        client: httpx.AsyncClient,
        upstream: str,
        config: Optional[TransportConfig] = None,
    ) -> None:
        self._cache = cache
        self._client = client
        self._upstream = upstream.rstrip("/")
        self._config = config or TransportConfig()

    @property
    def cache(self) -> DiskCache:
        return self._cache

    # ------------------------------------------------------------------ #
    # Verbs
    # ------------------------------------------------------------------ #

    async def list_versions(self, key: str) -> CachedResponse:
        """Serve ``<module>/@v/list``."""
        return await self._buffered(key, Verb.LIST)

    async def info(self, key: str) -> CachedResponse:
        """Serve ``<module>/@v/<version>.info``; fresh bodies must be a JSON object."""
        return await self._buffered(key, Verb.INFO)

    async def manifest(self, key: str) -> CachedResponse:
        """Serve ``<module>/@v/<version>.mod``."""
        return await self._buffered(key, Verb.MOD)

    async def fetch(self, verb: Verb, key: str) -> CachedResponse | ArchiveStream:
        """Dispatch *key* to the handler for *verb*."""
        if verb is Verb.ZIP:
            return await self.archive(key)
        handlers = {
            Verb.LIST: self.list_versions,
            Verb.INFO: self.info,
            Verb.MOD: self.manifest,
        }
        return await handlers[verb](key)

    async def archive(self, key: str) -> ArchiveStream:
        """Serve ``<module>/@v/<version>.zip`` as a stream.

        Raises:
            NotFoundError: If *key* is not a valid cache key.
            UpstreamStatusError: If upstream answers with a non-200 status.
            UpstreamTransportError: If upstream cannot be reached, or the
                response headers do not arrive before the deadline.
            StorageError: If the cache file cannot be created.
        """
        output = get_output()
        self._cache.path_for(key)

        handle = await self._open_cached(key)
        if handle is not None:
            output.info(f"[CACHE HIT] {key}")
            size = os.fstat(handle.fileno()).st_size
            return ArchiveStream(_read_file(handle), content_length=size, cached=True)

        output.info(f"[CACHE MISS] {key}")
        deadline = time.monotonic() + self._config.archive_timeout
        url = self._url(key)
        request = self._client.build_request("GET", url)
        try:
            with anyio.fail_after(self._config.archive_timeout):
                response = await self._client.send(request, stream=True)
        except TimeoutError as exc:
            output.error(f"Failed to fetch {url}: timed out after {self._config.archive_timeout:g}s")
            raise UpstreamTransportError("Failed to fetch: timed out") from exc
        except httpx.HTTPError as exc:
            output.error(f"Failed to fetch {url}: {exc}")
            raise UpstreamTransportError(f"Failed to fetch: {exc}") from exc

        if response.status_code != 200:
            await response.aclose()
            output.error(f"Upstream returned {response.status_code} for {url}")
            raise UpstreamStatusError(response.status_code, url)

        try:
            writer = await anyio.to_thread.run_sync(self._cache.writer, key)
        except BaseException as exc:
            with anyio.CancelScope(shield=True):
                await response.aclose()
            if isinstance(exc, StorageError):
                output.error(str(exc))
            raise

        length = _content_length(response)
        if length:
            output.info(f"Downloading zip {key} (size: {length} bytes)")
        return ArchiveStream(
            self._relay(key, response, writer, deadline),
            content_length=length,
            cached=False,
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _url(self, key: str) -> str:
        return f"{self._upstream}/{key}"

    async def _buffered(self, key: str, verb: Verb) -> CachedResponse:
        output = get_output()
        self._cache.path_for(key)

        body = await self._read_cached(key)
        if body is not None:
            output.info(f"[CACHE HIT] {key}")
            return CachedResponse(body, verb.media_type, cached=True)

        output.info(f"[CACHE MISS] {key}")
        url = self._url(key)
        try:
            with anyio.fail_after(self._config.request_timeout):
                body = await self._download(url)
        except TimeoutError as exc:
            output.error(f"Failed to fetch {url}: timed out after {self._config.request_timeout:g}s")
            raise UpstreamTransportError("Failed to fetch: timed out") from exc

        if verb is Verb.INFO:
            _validate_info(url, body)

        try:
            await anyio.to_thread.run_sync(self._cache.write, key, body)
        except StorageError as exc:
            output.warning(f"Failed to cache {key}: {exc}")
        return CachedResponse(body, verb.media_type, cached=False)

    async def _download(self, url: str) -> bytes:
        output = get_output()
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            output.error(f"Failed to fetch {url}: {exc}")
            raise UpstreamTransportError(f"Failed to fetch: {exc}") from exc
        if response.status_code != 200:
            output.error(f"Upstream returned {response.status_code} for {url}")
            raise UpstreamStatusError(response.status_code, url)
        return response.content

    async def _read_cached(self, key: str) -> Optional[bytes]:
        try:
            return await anyio.to_thread.run_sync(self._cache.read, key)
        except NotFoundError:
            return None
        except StorageError as exc:
            get_output().warning(f"{exc}; fetching from upstream")
            return None

    async def _open_cached(self, key: str) -> Optional[BinaryIO]:
        try:
            return await anyio.to_thread.run_sync(self._cache.open, key)
        except NotFoundError:
            return None
        except StorageError as exc:
            get_output().warning(f"{exc}; fetching from upstream")
            return None

    async def _relay(
        self,
        key: str,
        response: httpx.Response,
        writer: CacheWriter,
        deadline: float,
    ) -> AsyncIterator[bytes]:
        output = get_output()
        started = time.monotonic()
        chunks = response.aiter_bytes(CHUNK_SIZE)
        try:
            while True:
                try:
                    with anyio.fail_after(max(deadline - time.monotonic(), 0)):
                        chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                await anyio.to_thread.run_sync(writer.write, chunk)
                yield chunk
        except BaseException as exc:
            writer.abort()
            if isinstance(exc, Exception):
                output.error(
                    f"Error copying zip for {key}: {_describe(exc)} "
                    f"(copied {writer.bytes_written} bytes in {time.monotonic() - started:.1f}s)"
                )
            raise
        finally:
            with anyio.CancelScope(shield=True):
                await response.aclose()

        try:
            await anyio.to_thread.run_sync(writer.commit)
        except StorageError as exc:
            output.warning(f"Failed to cache {key}: {exc}")
            return
        output.success(
            f"[SUCCESS] Cached zip {key} "
            f"({writer.bytes_written} bytes in {time.monotonic() - started:.1f}s)"
        )


async def _read_file(handle: BinaryIO) -> AsyncIterator[bytes]:
    try:
        while True:
            chunk = await anyio.to_thread.run_sync(handle.read, CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


def _validate_info(url: str, body: bytes) -> None:
    try:
        data = json.loads(body)
    except ValueError as exc:
        get_output().error(f"Invalid JSON from upstream for {url}: {exc}")
        raise ValidationError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        get_output().error(f"Invalid JSON from upstream for {url}: not an object")
        raise ValidationError("Invalid JSON: expected an object")


def _content_length(response: httpx.Response) -> Optional[int]:
    # aiter_bytes() decodes Content-Encoding, so the encoded length no longer applies.
    if "content-encoding" in response.headers:
        return None
    value = response.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


def _describe(exc: Exception) -> str:
    if isinstance(exc, TimeoutError):
        return "deadline exceeded"
    return str(exc) or type(exc).__name__
