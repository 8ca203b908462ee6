"""Plain DNS over UDP.

:class:`UDPResolver` sends standard queries to one server, the way the
system stub resolver would but without consulting ``/etc/resolv.conf``.
``A`` and ``AAAA`` are queried concurrently and IPv4 addresses come first
in the result. As with a system resolver, one family failing (SERVFAIL, a
timeout on a network that drops ``AAAA``) does not discard the addresses
the other family returned.
"""

from __future__ import annotations

import asyncio

import dns.asyncquery
import dns.message
import dns.rcode
import dns.rdatatype

from modcache.exceptions import ResolutionError
from modcache.resolver.base import Resolver, extract_addresses

_RECORD_TYPES = (dns.rdatatype.A, dns.rdatatype.AAAA)


class UDPResolver(Resolver):
    """Resolve through a classic DNS server on UDP port 53 (or the configured port)."""

    async def _query(self, host: str) -> list[str]:
        server = await self._server_address()
        results = await asyncio.gather(
            *(self._query_type(host, server, rdtype) for rdtype in _RECORD_TYPES),
            return_exceptions=True,
        )

        addresses: list[str] = []
        failures: list[Exception] = []
        for result in results:
            if isinstance(result, list):
                addresses.extend(result)
            elif isinstance(result, Exception):
                failures.append(result)
            else:
                raise result
        if addresses or not failures:
            return addresses
        raise failures[0]

    async def _query_type(self, host: str, server: str, rdtype: dns.rdatatype.RdataType) -> list[str]:
        query = dns.message.make_query(host, rdtype)
        response = await dns.asyncquery.udp(query, server, port=self.descriptor.port)
        if response.rcode() == dns.rcode.NXDOMAIN:
            raise ResolutionError(f"no such host {host}")
        return extract_addresses(response, rdtype)
