"""Pluggable name resolution for outbound connections.

This package provides interchangeable resolvers, each speaking one DNS
transport, plus the factory that picks one from a descriptor string:

- :class:`Resolver` -- abstract base class with deadline handling.
- :class:`UDPResolver` -- plain DNS over UDP.
- :class:`DoHResolver` -- DNS-over-HTTPS (JSON API).
- :class:`DoTResolver` -- DNS-over-TLS.
- :class:`DoQResolver` -- ``quic://`` descriptors served via DNS-over-TLS.
- :func:`create_resolver` / :func:`parse_resolver` -- descriptor dispatch.

The resolver built at startup is handed to
:func:`modcache.client.build_transport`, which routes every outbound dial
through it.
"""

from modcache.resolver.base import Resolver, is_ip_address
from modcache.resolver.doh import DoHResolver
from modcache.resolver.factory import create_resolver, parse_resolver
from modcache.resolver.tls import DoQResolver, DoTResolver
from modcache.resolver.udp import UDPResolver

__all__ = [
    "Resolver",
    "UDPResolver",
    "DoHResolver",
    "DoTResolver",
    "DoQResolver",
    "create_resolver",
    "parse_resolver",
    "is_ip_address",
]
