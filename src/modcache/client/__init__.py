"""Outbound HTTP for modcache.

Everything that leaves the process for the upstream module proxy goes
through the objects built here:

- :func:`parse_proxy` -- forward-proxy descriptor parsing with
  degrade-to-direct on bad input.
- :class:`ResolvingBackend` / :class:`Socks5Backend` -- httpcore network
  backends that apply the custom resolver and the SOCKS5 hop to each dial.
- :class:`UpstreamTransport` -- httpx transport over those backends.
- :func:`build_transport` / :func:`build_client` -- composition into one
  shared :class:`httpx.AsyncClient`.
- :class:`Outbound` -- the bundle built from settings at startup.

Example::

    from modcache.client import Outbound

    outbound = Outbound(settings)
    response = await outbound.client.get("https://proxy.golang.org/golang.org/x/mod/@v/list")
    await outbound.aclose()
"""

from modcache.client.backend import ResolvingBackend, Socks5Backend
from modcache.client.proxy import parse_proxy
from modcache.client.transport import UpstreamTransport
from modcache.client.upstream import (
    Outbound,
    build_client,
    build_timeout,
    build_transport,
    describe_transport,
)

__all__ = [
    "Outbound",
    "ResolvingBackend",
    "Socks5Backend",
    "UpstreamTransport",
    "build_client",
    "build_timeout",
    "build_transport",
    "describe_transport",
    "parse_proxy",
]
