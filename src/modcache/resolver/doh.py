"""DNS-over-HTTPS using the JSON API.

:class:`DoHResolver` issues ``GET <endpoint>?name=<host>&type=A`` with
``Accept: application/dns-json`` -- the JSON flavour served by Cloudflare,
Google and most public DoH endpoints -- and keeps the ``A`` records (type
``1``) of the ``Answer`` list.

The resolver owns a dedicated :class:`httpx.AsyncClient`. It must not share
the upstream client: that client dials through this resolver, so sharing it
would make every lookup depend on itself.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from modcache.resolver.base import DEFAULT_TIMEOUT, Resolver, is_ip_address
from modcache.exceptions import ResolutionError
from modcache.models import ResolverDescriptor

_A_RECORD = 1
_CLIENT_TIMEOUT = 10.0


class DoHResolver(Resolver):
    """Resolve through a DNS-over-HTTPS JSON endpoint.

    Args:
        descriptor: Descriptor whose ``endpoint`` is the DoH URL.
        timeout: Default lookup deadline.
        client: Optional pre-built client, mainly for tests with
            :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        descriptor: ResolverDescriptor,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(descriptor, timeout)
        self._client = client or httpx.AsyncClient(timeout=_CLIENT_TIMEOUT)

    async def _query(self, host: str) -> list[str]:
        endpoint = self.descriptor.endpoint or ""
        try:
            response = await self._client.get(
                endpoint,
                params={"name": host, "type": "A"},
                headers={"Accept": "application/dns-json"},
            )
        except httpx.HTTPError as exc:
            raise ResolutionError(f"DoH request failed: {exc}") from exc

        if response.status_code != 200:
            raise ResolutionError(f"DoH server returned status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResolutionError(f"DoH server sent invalid JSON: {exc}") from exc

        return _a_records(payload)

    def describe(self) -> str:
        return self.descriptor.endpoint or "https://"

    async def aclose(self) -> None:
        await self._client.aclose()


def _a_records(payload: Any) -> list[str]:
    """Pick the IP addresses of ``A`` answers out of a DoH JSON document."""
    if not isinstance(payload, dict):
        return []
    answers = payload.get("Answer") or []
    addresses: list[str] = []
    for answer in answers:
        if not isinstance(answer, dict) or answer.get("type") != _A_RECORD:
            continue
        data = str(answer.get("data", ""))
        if is_ip_address(data):
            addresses.append(data)
    return addresses
