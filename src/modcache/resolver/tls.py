"""DNS-over-TLS, and the DNS-over-QUIC descriptor that falls back to it.

:class:`DoTResolver` opens a TLS connection to the server (SNI and
certificate verification against the bare host from the descriptor),
writes one length-prefixed query as RFC 7858 frames it, reads one framed
reply and keeps its ``A`` records.

:class:`DoQResolver` accepts ``quic://`` descriptors but does **not** speak
QUIC: it runs the DNS-over-TLS exchange against the same host and port.
:meth:`DoQResolver.describe` says so, and the server logs it at startup, so
the fallback is never mistaken for DoQ support.
"""

from __future__ import annotations

import ssl

import certifi
import dns.asyncquery
import dns.message
import dns.rdatatype

from modcache.models import ResolverDescriptor
from modcache.resolver.base import DEFAULT_TIMEOUT, Resolver, extract_addresses


class DoTResolver(Resolver):
    """Resolve through a DNS-over-TLS server (default port 853)."""

    def __init__(self, descriptor: ResolverDescriptor, timeout: float = DEFAULT_TIMEOUT) -> None:
        super().__init__(descriptor, timeout)
        self._ssl_context = ssl.create_default_context(cafile=certifi.where())

    async def _query(self, host: str) -> list[str]:
        server = await self._server_address()
        query = dns.message.make_query(host, dns.rdatatype.A)
        response = await dns.asyncquery.tls(
            query,
            server,
            port=self.descriptor.port,
            ssl_context=self._ssl_context,
            server_hostname=self.descriptor.host,
        )
        return extract_addresses(response, dns.rdatatype.A)


class DoQResolver(DoTResolver):
    """``quic://`` descriptor served over the DNS-over-TLS code path."""

    def describe(self) -> str:
        return f"quic://{self.descriptor.address} (via DNS-over-TLS)"
