"""Resolver descriptor parsing and dispatch.

A resolver is configured with one string. The prefix selects the protocol:

==========================  ===========  ============
Descriptor                  Protocol     Default port
==========================  ===========  ============
``""``                      system       --
``https://host/path``       DoH (JSON)   443
``tls://host[:port]``       DoT          853
``quic://host[:port]``      DoT fallback 853
``udp://host[:port]``       UDP          53
``host[:port]``             UDP          53
==========================  ===========  ============

Example::

    resolver = create_resolver("tls://1.1.1.1")
    addresses = await resolver.lookup("proxy.golang.org")
"""

from __future__ import annotations

from typing import Optional

import httpx

from modcache.resolver.base import DEFAULT_TIMEOUT, Resolver
from modcache.resolver.doh import DoHResolver
from modcache.resolver.tls import DoQResolver, DoTResolver
from modcache.resolver.udp import UDPResolver
from modcache.exceptions import ConfigError
from modcache.models import ResolverDescriptor, ResolverKind

_PREFIXES = (
    ("quic://", ResolverKind.QUIC, 853),
    ("tls://", ResolverKind.TLS, 853),
    ("udp://", ResolverKind.UDP, 53),
)

_RESOLVERS: dict[ResolverKind, type[Resolver]] = {
    ResolverKind.UDP: UDPResolver,
    ResolverKind.HTTPS: DoHResolver,
    ResolverKind.TLS: DoTResolver,
    ResolverKind.QUIC: DoQResolver,
}


def split_host_port(value: str, default_port: int) -> tuple[str, int]:
    """Split ``host[:port]`` into its parts.

    Accepts bracketed IPv6 (``[::1]:53``) and bare IPv6 literals, which
    cannot carry a port without brackets.

    Raises:
        ConfigError: If the host is empty or the port is not a number in
            ``1..65535``.
    """
    value = value.strip().rstrip("/")
    port_text = ""
    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ConfigError(f"Invalid server address: {value!r}")
        port_text = rest[1:]
    elif value.count(":") == 1:
        host, _, port_text = value.partition(":")
    else:
        host = value

    if not host:
        raise ConfigError(f"Missing host in server address: {value!r}")
    if not port_text:
        return host, default_port
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ConfigError(f"Invalid port in server address: {value!r}")
    return host, int(port_text)


def parse_resolver(text: str) -> Optional[ResolverDescriptor]:
    """Parse a resolver descriptor string.

    Args:
        text: The configured DNS server string.

    Returns:
        A :class:`~modcache.models.ResolverDescriptor`, or ``None`` for an
        empty string (system resolution).

    Raises:
        ConfigError: If the string names a server that cannot be parsed.
    """
    text = text.strip()
    if not text:
        return None

    if text.startswith("https://"):
        try:
            url = httpx.URL(text)
        except httpx.InvalidURL as exc:
            raise ConfigError(f"Invalid DoH endpoint {text!r}: {exc}") from exc
        if not url.host:
            raise ConfigError(f"Missing host in DoH endpoint: {text!r}")
        return ResolverDescriptor(
            kind=ResolverKind.HTTPS,
            host=url.host,
            port=url.port or 443,
            endpoint=text,
        )

    kind, default_port, rest = ResolverKind.UDP, 53, text
    for prefix, prefix_kind, prefix_port in _PREFIXES:
        if text.startswith(prefix):
            kind, default_port, rest = prefix_kind, prefix_port, text[len(prefix):]
            break

    host, port = split_host_port(rest, default_port)
    return ResolverDescriptor(kind=kind, host=host, port=port)


def create_resolver(text: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Resolver]:
    """Build the resolver selected by *text*.

    Args:
        text: Resolver descriptor string (see module docstring).
        timeout: Default per-lookup deadline in seconds.

    Returns:
        A :class:`~modcache.resolver.base.Resolver`, or ``None`` when *text* is
        empty and system resolution should be used.

    Raises:
        ConfigError: If the descriptor cannot be parsed.
    """
    descriptor = parse_resolver(text)
    if descriptor is None:
        return None
    return _RESOLVERS[descriptor.kind](descriptor, timeout=timeout)
