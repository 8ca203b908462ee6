"""httpx transport over a custom-backend httpcore pool.

:class:`httpx.AsyncHTTPTransport` always builds its pool on the default
network backend. :class:`UpstreamTransport` accepts any httpcore pool
(direct, HTTP proxy, or SOCKS5 via :class:`~modcache.client.backend.Socks5Backend`)
and adapts requests, responses and exceptions between the two libraries.
"""

from __future__ import annotations

import contextlib
from typing import AsyncIterable, AsyncIterator, Iterator, Union

import httpcore
import httpx

from modcache.exceptions import DialError

Pool = Union[httpcore.AsyncConnectionPool, httpcore.AsyncHTTPProxy]

# Most specific first: the first isinstance match wins.
_EXCEPTION_MAP: tuple[tuple[type[Exception], type[httpx.TransportError]], ...] = (
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.ProxyError, httpx.ProxyError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.ProtocolError, httpx.ProtocolError),
)


@contextlib.contextmanager
def _map_errors() -> Iterator[None]:
    try:
        yield
    except DialError as exc:
        raise httpx.ConnectError(str(exc)) from exc
    except Exception as exc:
        for core_error, httpx_error in _EXCEPTION_MAP:
            if isinstance(exc, core_error):
                raise httpx_error(str(exc)) from exc
        raise


class _ResponseStream(httpx.AsyncByteStream):
    def __init__(self, stream: AsyncIterable[bytes]) -> None:
        self._stream = stream

    async def __aiter__(self) -> AsyncIterator[bytes]:
        with _map_errors():
            async for part in self._stream:
                yield part

    async def aclose(self) -> None:
        if hasattr(self._stream, "aclose"):
            with _map_errors():
                await self._stream.aclose()


class UpstreamTransport(httpx.AsyncBaseTransport):
    """Send httpx requests through an httpcore pool.

    Args:
        pool: The connection pool to send through. The transport owns it
            and closes it in :meth:`aclose`.
    """

    def __init__(self, pool: Pool) -> None:
        self._pool = pool

    @property
    def pool(self) -> Pool:
        """The underlying httpcore pool."""
        return self._pool

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        assert isinstance(request.stream, httpx.AsyncByteStream)

        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with _map_errors():
            core_response = await self._pool.handle_async_request(core_request)

        assert isinstance(core_response.stream, AsyncIterable)
        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_ResponseStream(core_response.stream),
            extensions=core_response.extensions,
        )

    async def aclose(self) -> None:
        await self._pool.aclose()
