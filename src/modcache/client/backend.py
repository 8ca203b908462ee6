"""Network backends that put the resolver and SOCKS5 proxy into every dial.

httpcore opens connections through an :class:`httpcore.AsyncNetworkBackend`.
The two backends here wrap the default AnyIO backend:

- :class:`ResolvingBackend` resolves each hostname through the configured
  :class:`~modcache.resolver.Resolver` and dials the first address. A failed
  lookup is a hard :class:`~modcache.exceptions.DialError`; there is no
  fallback to system resolution. Without a resolver, hostnames pass
  through to the system resolver unchanged.
- :class:`Socks5Backend` dials the SOCKS5 server instead and asks it to
  ``CONNECT`` to the destination. With a resolver configured the
  destination is resolved locally and sent as a literal IP; otherwise the
  hostname is sent and the SOCKS server resolves it.

TLS is not handled here: httpcore upgrades the returned stream itself, with
SNI set to the original hostname, so certificates are verified against the
name and not the resolved address.
"""

from __future__ import annotations

import socket
from typing import Iterable, Optional

import httpcore
from socksio import socks5

from modcache.exceptions import DialError, ResolutionError
from modcache.models import ProxyDescriptor
from modcache.resolver import Resolver, is_ip_address

_MAX_HANDSHAKE_BYTES = 4096

_REPLY_CODES = {
    socks5.SOCKS5ReplyCode.GENERAL_SERVER_FAILURE: "general server failure",
    socks5.SOCKS5ReplyCode.CONNECTION_NOT_ALLOWED_BY_RULESET: "connection not allowed by ruleset",
    socks5.SOCKS5ReplyCode.NETWORK_UNREACHABLE: "network unreachable",
    socks5.SOCKS5ReplyCode.HOST_UNREACHABLE: "host unreachable",
    socks5.SOCKS5ReplyCode.CONNECTION_REFUSED: "connection refused",
    socks5.SOCKS5ReplyCode.TTL_EXPIRED: "TTL expired",
    socks5.SOCKS5ReplyCode.COMMAND_NOT_SUPPORTED: "command not supported",
    socks5.SOCKS5ReplyCode.ADDRESS_TYPE_NOT_SUPPORTED: "address type not supported",
}


class ResolvingBackend(httpcore.AsyncNetworkBackend):
    """Direct TCP dialing with optional custom resolution and keep-alive.

    Args:
        resolver: Resolver used for every hostname, or ``None`` for system
            resolution.
        connect_timeout: Upper bound for lookup plus TCP connect, applied
            even when httpcore passes a larger (or no) timeout.
        keepalive: Enable ``SO_KEEPALIVE`` on every socket.
        backend: The backend that performs the actual socket I/O. Defaults
            to :class:`httpcore.AnyIOBackend`; tests pass
            :class:`httpcore.AsyncMockBackend`.
    """

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        connect_timeout: float = 5.0,
        keepalive: bool = True,
        backend: Optional[httpcore.AsyncNetworkBackend] = None,
    ) -> None:
        self._resolver = resolver
        self._connect_timeout = connect_timeout
        self._backend = backend or httpcore.AnyIOBackend()
        self._socket_options: list[tuple[int, int, int]] = []
        if keepalive:
            self._socket_options.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    @property
    def resolver(self) -> Optional[Resolver]:
        """The resolver consulted before each dial, if any."""
        return self._resolver

    async def resolve(self, host: str, timeout: Optional[float] = None) -> str:
        """Return the address to dial for *host*.

        Returns *host* unchanged when it is already an IP literal or no
        resolver is configured.

        Raises:
            DialError: If the resolver fails.
        """
        if self._resolver is None or is_ip_address(host):
            return host
        try:
            addresses = await self._resolver.lookup(host, timeout=timeout)
        except ResolutionError as exc:
            raise DialError(f"failed to resolve {host}: {exc}") from exc
        return addresses[0]

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.AsyncNetworkStream:
        limit = self._limit(timeout)
        address = await self.resolve(host, limit)
        return await self._open(address, port, limit, local_address, socket_options)

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._backend.connect_unix_socket(
            path, timeout=timeout, socket_options=socket_options
        )

    async def sleep(self, seconds: float) -> None:
        await self._backend.sleep(seconds)

    def _limit(self, timeout: Optional[float]) -> float:
        if timeout is None:
            return self._connect_timeout
        return min(timeout, self._connect_timeout)

    async def _open(
        self,
        host: str,
        port: int,
        timeout: float,
        local_address: Optional[str],
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]],
    ) -> httpcore.AsyncNetworkStream:
        options = list(socket_options or []) + self._socket_options
        return await self._backend.connect_tcp(
            host,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=options,
        )


class Socks5Backend(ResolvingBackend):
    """Dial every destination through a SOCKS5 server.

    Args:
        proxy: The SOCKS5 endpoint. Credentials in it select
            username/password authentication, otherwise no-auth is offered.
        resolver: When set, resolves both the SOCKS server and each
            destination locally; destinations are then sent to the server
            as literal IPs.
        connect_timeout: Bound for lookup, connect and handshake.
        keepalive: Enable ``SO_KEEPALIVE`` on the proxy socket.
        backend: Underlying socket backend.
    """

    def __init__(
        self,
        proxy: ProxyDescriptor,
        resolver: Optional[Resolver] = None,
        connect_timeout: float = 5.0,
        keepalive: bool = True,
        backend: Optional[httpcore.AsyncNetworkBackend] = None,
    ) -> None:
        super().__init__(resolver, connect_timeout, keepalive, backend)
        self._proxy = proxy

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.AsyncNetworkStream:
        limit = self._limit(timeout)
        target = await self.resolve(host, limit)
        server = await self.resolve(self._proxy.host, limit)
        stream = await self._open(server, self._proxy.port, limit, local_address, socket_options)
        try:
            await self._handshake(stream, target, port, limit)
        except BaseException:
            await stream.aclose()
            raise
        return stream

    async def _handshake(
        self,
        stream: httpcore.AsyncNetworkStream,
        host: str,
        port: int,
        timeout: float,
    ) -> None:
        conn = socks5.SOCKS5Connection()
        use_password = self._proxy.username is not None
        method = (
            socks5.SOCKS5AuthMethod.USERNAME_PASSWORD
            if use_password
            else socks5.SOCKS5AuthMethod.NO_AUTH_REQUIRED
        )

        conn.send(socks5.SOCKS5AuthMethodsRequest([method]))
        reply = await self._exchange(conn, stream, timeout)
        if not isinstance(reply, socks5.SOCKS5AuthReply) or reply.method != method:
            raise DialError(f"SOCKS5 server {self._proxy.display_url} rejected auth method")

        if use_password:
            conn.send(
                socks5.SOCKS5UsernamePasswordRequest(
                    (self._proxy.username or "").encode(),
                    (self._proxy.password or "").encode(),
                )
            )
            reply = await self._exchange(conn, stream, timeout)
            if not isinstance(reply, socks5.SOCKS5UsernamePasswordReply) or not reply.success:
                raise DialError(f"SOCKS5 server {self._proxy.display_url}: invalid username/password")

        conn.send(
            socks5.SOCKS5CommandRequest.from_address(socks5.SOCKS5Command.CONNECT, (host, port))
        )
        reply = await self._exchange(conn, stream, timeout)
        if not isinstance(reply, socks5.SOCKS5Reply):
            raise DialError(f"SOCKS5 server {self._proxy.display_url} sent an unexpected reply")
        if reply.reply_code != socks5.SOCKS5ReplyCode.SUCCEEDED:
            reason = _REPLY_CODES.get(reply.reply_code, "unknown error")
            raise DialError(f"SOCKS5 connect to {host}:{port} failed: {reason}")

    @staticmethod
    async def _exchange(
        conn: socks5.SOCKS5Connection,
        stream: httpcore.AsyncNetworkStream,
        timeout: float,
    ) -> object:
        await stream.write(conn.data_to_send(), timeout=timeout)
        incoming = await stream.read(_MAX_HANDSHAKE_BYTES, timeout=timeout)
        if not incoming:
            raise DialError("SOCKS5 server closed the connection during handshake")
        try:
            return conn.receive_data(incoming)
        except Exception as exc:  # socksio raises ProtocolError and plain ValueErrors
            raise DialError(f"malformed SOCKS5 reply: {exc}") from exc
