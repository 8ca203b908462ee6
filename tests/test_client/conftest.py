"""Fixtures for outbound transport tests.

:class:`RecordingBackend` stands in for the socket layer under the
resolving/SOCKS5 backends: it records every dial and hands out
:class:`RecordingStream` objects that replay canned server bytes and keep
everything the client wrote.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable, Optional

import httpcore
import pytest

from modcache.exceptions import ResolutionError


class RecordingStream(httpcore.AsyncMockStream):
    def __init__(self, buffer: list[bytes]) -> None:
        super().__init__(buffer)
        self.written = bytearray()
        self.closed = False

    async def write(self, buffer: bytes, timeout: Optional[float] = None) -> None:
        self.written += buffer

    async def aclose(self) -> None:
        self.closed = True
        await super().aclose()


class RecordingBackend(httpcore.AsyncNetworkBackend):
    def __init__(self, replies: Iterable[bytes] = (), error: Optional[Exception] = None) -> None:
        self._replies = list(replies)
        self._error = error
        self.connects: list[dict] = []
        self.streams: list[RecordingStream] = []

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.AsyncNetworkStream:
        self.connects.append(
            {
                "host": host,
                "port": port,
                "timeout": timeout,
                "socket_options": list(socket_options or []),
            }
        )
        if self._error is not None:
            raise self._error
        stream = RecordingStream(list(self._replies))
        self.streams.append(stream)
        return stream

    async def connect_unix_socket(self, path, timeout=None, socket_options=None):
        raise NotImplementedError

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class StubResolver:
    """Answers from a fixed table; unknown names fail like a real resolver."""

    def __init__(self, table: dict[str, list[str]]) -> None:
        self._table = table
        self.lookups: list[tuple[str, Optional[float]]] = []

    async def lookup(self, host: str, timeout: Optional[float] = None) -> list[str]:
        self.lookups.append((host, timeout))
        if host not in self._table:
            raise ResolutionError(f"no such host {host}")
        return self._table[host]

    def describe(self) -> str:
        return "stub://table"

    async def aclose(self) -> None:
        pass


@pytest.fixture
def recording_backend() -> Callable[..., RecordingBackend]:
    return RecordingBackend


@pytest.fixture
def stub_resolver() -> Callable[..., StubResolver]:
    return StubResolver
