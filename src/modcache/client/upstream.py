"""Composition of the single outbound path shared by every request.

:func:`build_transport` combines the optional resolver and the optional
forward proxy into one :class:`~modcache.client.transport.UpstreamTransport`:

=================  ===============================  ==========================
Proxy              httpcore pool                    Resolver applies to
=================  ===============================  ==========================
none               ``AsyncConnectionPool``          the upstream host
``http(s)://``     ``AsyncHTTPProxy``               the proxy host
``socks5(h)://``   ``AsyncConnectionPool`` over     the SOCKS server and the
                   :class:`Socks5Backend`           upstream host
=================  ===============================  ==========================

:func:`build_client` wraps the transport in the shared
:class:`httpx.AsyncClient`, and :class:`Outbound` bundles the resolver,
proxy, transport and client built from :class:`~modcache.models.Settings`
so the server can build them at startup and close them at shutdown.
"""

from __future__ import annotations

import ssl
from typing import Optional

import certifi
import httpcore
import httpx

from modcache import __version__
from modcache.client.backend import ResolvingBackend, Socks5Backend
from modcache.client.proxy import parse_proxy
from modcache.client.transport import UpstreamTransport
from modcache.models import ProxyDescriptor, ProxyKind, Settings, TransportConfig
from modcache.output import warning
from modcache.resolver import DoQResolver, Resolver, create_resolver


def _ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def build_transport(
    resolver: Optional[Resolver],
    proxy: Optional[ProxyDescriptor],
    config: Optional[TransportConfig] = None,
    backend: Optional[httpcore.AsyncNetworkBackend] = None,
) -> UpstreamTransport:
    """Build the outbound transport.

    Args:
        resolver: Custom resolver, or ``None`` for system resolution.
        proxy: Forward proxy, or ``None`` for direct connections.
        config: Timeouts and pool limits; defaults to
            :class:`~modcache.models.TransportConfig`.
        backend: Socket backend under the resolving layer (tests only).

    Returns:
        A transport ready to be mounted on an :class:`httpx.AsyncClient`.
    """
    config = config or TransportConfig()
    ssl_context = _ssl_context()
    pool_options = {
        "max_connections": None,
        # One upstream origin per process, so the per-host cap is the one that binds.
        "max_keepalive_connections": min(config.max_idle_connections, config.max_idle_per_host),
        "keepalive_expiry": config.idle_timeout,
    }

    if proxy is not None and proxy.kind == ProxyKind.SOCKS5:
        network: httpcore.AsyncNetworkBackend = Socks5Backend(
            proxy,
            resolver=resolver,
            connect_timeout=config.connect_timeout,
            keepalive=config.keepalive,
            backend=backend,
        )
    else:
        network = ResolvingBackend(
            resolver=resolver,
            connect_timeout=config.connect_timeout,
            keepalive=config.keepalive,
            backend=backend,
        )

    if proxy is not None and proxy.kind == ProxyKind.HTTP:
        host = f"[{proxy.host}]" if ":" in proxy.host else proxy.host
        auth = (proxy.username, proxy.password or "") if proxy.username else None
        pool: httpcore.AsyncConnectionPool | httpcore.AsyncHTTPProxy = httpcore.AsyncHTTPProxy(
            proxy_url=f"{proxy.scheme}://{host}:{proxy.port}/",
            proxy_auth=auth,
            ssl_context=ssl_context,
            proxy_ssl_context=ssl_context if proxy.scheme == "https" else None,
            network_backend=network,
            **pool_options,
        )
    else:
        pool = httpcore.AsyncConnectionPool(
            ssl_context=ssl_context,
            network_backend=network,
            **pool_options,
        )
    return UpstreamTransport(pool)


def build_timeout(config: TransportConfig) -> httpx.Timeout:
    """Client-level timeouts.

    httpcore applies the ``connect`` value to the TLS handshake as well; the
    TCP connect itself is bounded separately by the resolving backend.
    ``read`` bounds the wait for response headers and every later chunk.
    """
    return httpx.Timeout(
        connect=config.tls_handshake_timeout,
        read=config.response_header_timeout,
        write=config.response_header_timeout,
        pool=config.connect_timeout,
    )


def build_client(
    transport: httpx.AsyncBaseTransport,
    config: Optional[TransportConfig] = None,
) -> httpx.AsyncClient:
    """Wrap *transport* in the shared upstream client.

    Environment proxy variables are not consulted here; proxy selection
    already happened in :func:`~modcache.config.select_proxy_url`.
    """
    config = config or TransportConfig()
    return httpx.AsyncClient(
        transport=transport,
        timeout=build_timeout(config),
        follow_redirects=True,
        trust_env=False,
        headers={"User-Agent": f"modcache/{__version__}"},
    )


def describe_transport(resolver: Optional[Resolver], proxy: Optional[ProxyDescriptor]) -> str:
    """One-line summary of the outbound path for startup logs."""
    route = "direct" if proxy is None else f"{proxy.kind.value} proxy {proxy.display_url}"
    dns = "system DNS" if resolver is None else f"DNS {resolver.describe()}"
    return f"{route}, {dns}"


class Outbound:
    """The resolver, proxy, transport and client built from one :class:`Settings`.

    Built once at startup and shared read-only by all requests.

    Args:
        settings: Effective settings; ``dns`` and ``proxy`` are parsed here.

    Raises:
        ConfigError: If the resolver descriptor is malformed. A malformed
            proxy only logs a warning and falls back to direct dialing.
    """

    def __init__(self, settings: Settings) -> None:
        config = settings.transport
        self.resolver = create_resolver(settings.dns, timeout=config.dns_timeout)
        if isinstance(self.resolver, DoQResolver):
            warning(f"DNS-over-QUIC is not supported; {self.resolver.describe()}")
        self.proxy = parse_proxy(settings.proxy)
        self.transport = build_transport(self.resolver, self.proxy, config)
        self.client = build_client(self.transport, config)

    def describe(self) -> str:
        return describe_transport(self.resolver, self.proxy)

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.resolver is not None:
            await self.resolver.aclose()
