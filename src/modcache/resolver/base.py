"""Abstract base class for resolvers.

A :class:`Resolver` translates a hostname into an ordered list of IP
address strings using one DNS wire protocol. Every concrete strategy
(plain UDP, DNS-over-HTTPS, DNS-over-TLS) subclasses it and implements
:meth:`~Resolver._query`; the base class owns the behaviour shared by all of
them:

- IP literals are returned as-is without touching the network.
- Every lookup runs under a deadline. When it expires the in-flight query
  is cancelled and :class:`~modcache.exceptions.ResolutionError` is raised.
- Library and socket errors are normalised to ``ResolutionError``, and an
  empty answer is a failure rather than an empty list.

See Also:
    :func:`modcache.resolver.factory.create_resolver` for descriptor dispatch.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from abc import ABC, abstractmethod

import dns.exception
import dns.message
import dns.rcode
import dns.rdatatype

from modcache.exceptions import ResolutionError
from modcache.models import ResolverDescriptor

DEFAULT_TIMEOUT = 5.0


def is_ip_address(value: str) -> bool:
    """Return True if *value* is an IPv4 or IPv6 literal."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def extract_addresses(response: dns.message.Message, rdtype: dns.rdatatype.RdataType) -> list[str]:
    """Collect the addresses of every *rdtype* record in the answer section.

    CNAME records in the chain are skipped; only the terminal address
    records are returned, in the order the server sent them.

    Raises:
        ResolutionError: If the response carries an error rcode.
    """
    rcode = response.rcode()
    if rcode != dns.rcode.NOERROR:
        raise ResolutionError(f"DNS server answered {dns.rcode.to_text(rcode)}")
    addresses: list[str] = []
    for rrset in response.answer:
        if rrset.rdtype != rdtype:
            continue
        addresses.extend(rdata.address for rdata in rrset)
    return addresses


class Resolver(ABC):
    """Strategy object for one DNS transport.

    Instances are immutable after construction and safe to share between
    concurrent requests.

    Args:
        descriptor: The parsed configuration selecting this resolver.
        timeout: Deadline applied to a lookup when the caller passes none.
    """

    def __init__(self, descriptor: ResolverDescriptor, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._descriptor = descriptor
        self._timeout = timeout

    @property
    def descriptor(self) -> ResolverDescriptor:
        """The descriptor this resolver was built from."""
        return self._descriptor

    async def lookup(self, host: str, timeout: float | None = None) -> list[str]:
        """Resolve *host* to its IP addresses.

        Args:
            host: Hostname (or IP literal) to resolve.
            timeout: Deadline in seconds; defaults to the constructor value.

        Returns:
            A non-empty list of address strings in server order.

        Raises:
            ResolutionError: If the lookup fails, times out, or yields no
                address records.
        """
        host = host.rstrip(".")
        if is_ip_address(host):
            return [host]

        limit = self._timeout if timeout is None else timeout
        try:
            addresses = await asyncio.wait_for(self._query(host), limit)
        except asyncio.TimeoutError as exc:
            raise ResolutionError(
                f"lookup {host} via {self.describe()} timed out after {limit:g}s"
            ) from exc
        except ResolutionError as exc:
            raise ResolutionError(f"lookup {host} via {self.describe()}: {exc}") from exc
        except (dns.exception.DNSException, OSError) as exc:
            raise ResolutionError(f"lookup {host} via {self.describe()} failed: {exc}") from exc

        if not addresses:
            raise ResolutionError(f"no A records found for {host}")
        return addresses

    @abstractmethod
    async def _query(self, host: str) -> list[str]:
        """Run the protocol-specific query for *host*.

        Implementations may raise ``ResolutionError``,
        :class:`dns.exception.DNSException` or :class:`OSError`; the
        caller normalises all of them.
        """
        ...

    def describe(self) -> str:
        """Return a short human-readable form, e.g. ``tls://1.1.1.1:853``."""
        return f"{self._descriptor.kind.value}://{self._descriptor.address}"

    async def aclose(self) -> None:
        """Release any resources held by the resolver."""

    async def _server_address(self) -> str:
        """Return the server as an IP literal, locating it via the system if needed."""
        host = self._descriptor.host
        if is_ip_address(host):
            return host
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, self._descriptor.port, type=socket.SOCK_STREAM)
        if not infos:
            raise ResolutionError(f"cannot locate DNS server {host}")
        return infos[0][4][0]
