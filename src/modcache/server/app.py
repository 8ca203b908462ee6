"""FastAPI application serving the module proxy protocol.

:func:`create_app` wires settings, the disk cache and the upstream client
into one ASGI app:

- ``GET /health`` and ``GET /healthz`` answer ``{"status":"ok"}``;
- any other ``GET`` is classified by :func:`~modcache.server.router.resolve_verb`
  and handed to :class:`~modcache.server.coordinator.ModuleFetcher`;
- every other method is ``405``.

A client that disconnects while its artifact is still being fetched cancels
the upstream request; nothing is cached for it.

Errors are rendered as ``text/plain`` bodies with the status carried by the
exception (see :mod:`modcache.exceptions`), never as JSON, so ``go`` prints
them verbatim.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

import anyio
import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from modcache import __version__
from modcache.cache import DiskCache
from modcache.client import Outbound
from modcache.exceptions import ModcacheError
from modcache.models import Settings, Verb
from modcache.output import get_output
from modcache.server.coordinator import ArchiveStream, CachedResponse, ModuleFetcher
from modcache.server.router import is_health_check, request_key, resolve_verb

# nginx convention for a request abandoned by its client.
CLIENT_CLOSED_REQUEST = 499


def create_app(
    settings: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[DiskCache] = None,
) -> FastAPI:
    """Build the ASGI application.

    Args:
        settings: Effective settings.
        client: Upstream client to use instead of building one from
            *settings*. The caller keeps ownership and closes it.
        cache: Artifact store to use instead of ``DiskCache(settings.cache_dir)``.

    Returns:
        A :class:`fastapi.FastAPI` instance. When the client is built here,
        it is closed when the app's lifespan ends.

    Raises:
        ConfigError: If the resolver descriptor in *settings* is malformed.
    """
    outbound: Optional[Outbound] = None
    if client is None:
        outbound = Outbound(settings)
        client = outbound.client

    fetcher = ModuleFetcher(
        cache or DiskCache(settings.cache_dir),
        client,
        settings.upstream,
        settings.transport,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            get_output().info("Shutting down server...")
            if outbound is not None:
                await outbound.aclose()

    app = FastAPI(
        title="modcache",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.fetcher = fetcher
    app.state.outbound = outbound

    @app.exception_handler(ModcacheError)
    async def _modcache_error(request: Request, exc: ModcacheError) -> Response:
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> Response:
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.get("/{path:path}")
    async def module_proxy(path: str, request: Request) -> Response:
        if is_health_check(path):
            return JSONResponse({"status": "ok"})

        key = request_key(path)
        peer = f"{request.client.host}:{request.client.port}" if request.client else "-"
        get_output().info(f"[{peer}] GET {key}")

        verb = resolve_verb(key)
        result = await _fetch_while_connected(request, fetcher, verb, key)
        if result is None:
            get_output().info(f"[{peer}] client disconnected before {key} was served")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        if isinstance(result, ArchiveStream):
            headers = {}
            if result.content_length is not None:
                headers["Content-Length"] = str(result.content_length)
            return StreamingResponse(result.chunks, media_type=result.media_type, headers=headers)
        return Response(content=result.body, media_type=result.media_type)

    return app


async def _fetch_while_connected(
    request: Request, fetcher: ModuleFetcher, verb: Verb, key: str
) -> Optional[Union[CachedResponse, ArchiveStream]]:
    """Run ``fetcher.fetch`` until it finishes or the client disconnects.

    Starlette only notices a disconnect once it writes the response, so
    the request's ``receive`` channel is watched alongside the fetch.

    Returns:
        The fetch result, or ``None`` if the client went away first.
    """
    result: Optional[Union[CachedResponse, ArchiveStream]] = None
    failure: Optional[Exception] = None
    async with anyio.create_task_group() as tg:
        tg.start_soon(_cancel_on_disconnect, request, tg.cancel_scope)
        try:
            result = await fetcher.fetch(verb, key)
        except Exception as exc:
            failure = exc
        tg.cancel_scope.cancel()
    if failure is not None:
        raise failure
    return result


async def _cancel_on_disconnect(request: Request, scope: anyio.CancelScope) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            scope.cancel()
            return
