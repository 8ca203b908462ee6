"""Forward-proxy descriptor parsing.

The proxy is configured with one URL string. Its scheme selects the
family:

- ``http://`` / ``https://`` -- a classic forward proxy. Plain-HTTP
  upstream requests are forwarded and HTTPS ones are tunnelled with
  ``CONNECT``.
- ``socks5://`` / ``socks5h://`` -- a SOCKS5 server. Both schemes behave
  the same here. The configured resolver, not the scheme, decides who
  resolves the destination.

Anything else, including a URL that does not parse, is reported as a
warning and ignored so the server falls back to direct dialing instead of
refusing to start.
"""

from __future__ import annotations

from typing import Optional

import httpx

from modcache.models import ProxyDescriptor, ProxyKind
from modcache.output import warning

_KINDS = {
    "http": ProxyKind.HTTP,
    "https": ProxyKind.HTTP,
    "socks5": ProxyKind.SOCKS5,
    "socks5h": ProxyKind.SOCKS5,
}

_DEFAULT_PORTS = {"http": 80, "https": 443, "socks5": 1080, "socks5h": 1080}


def parse_proxy(text: str) -> Optional[ProxyDescriptor]:
    """Parse a forward-proxy URL.

    Args:
        text: The configured proxy string, possibly empty.

    Returns:
        A :class:`~modcache.models.ProxyDescriptor`, or ``None`` when no
        proxy is configured or the value is unusable (a warning is logged
        in the latter case).

    Example::

        >>> parse_proxy("socks5://user:pw@10.0.0.1:1080").kind
        <ProxyKind.SOCKS5: 'socks5'>
    """
    text = text.strip()
    if not text:
        return None

    try:
        url = httpx.URL(text)
    except httpx.InvalidURL as exc:
        warning(f"Invalid proxy URL '{text}': {exc}")
        return None

    scheme = url.scheme
    kind = _KINDS.get(scheme)
    if kind is None:
        warning(
            f"Unsupported proxy scheme: {scheme or '(none)'} "
            "(supported: http, https, socks5, socks5h)"
        )
        return None
    if not url.host:
        warning(f"Invalid proxy URL '{text}': missing host")
        return None

    return ProxyDescriptor(
        kind=kind,
        scheme=scheme,
        url=text,
        host=url.host,
        port=url.port or _DEFAULT_PORTS[scheme],
        username=url.username or None,
        password=url.password or None,
    )
