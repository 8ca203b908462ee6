"""Canonical Pydantic models shared across all modcache modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Descriptors** -- immutable values parsed once at startup and shared
read-only by every request:
    :class:`ResolverDescriptor`, :class:`ProxyDescriptor` and
    :class:`TransportConfig`.

**Settings** -- the effective process configuration, assembled by
:func:`~modcache.config.resolve_settings` from CLI flags, environment
variables, an optional JSON config file, and defaults:
    :class:`Settings`.

:class:`Verb` enumerates the four request kinds of the module proxy
protocol together with the content type each one is served with.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Protocol verbs ---


class Verb(str, enum.Enum):
    """Module proxy request kinds, keyed by the path suffix that selects them."""

    LIST = "list"
    INFO = "info"
    MOD = "mod"
    ZIP = "zip"

    @property
    def media_type(self) -> str:
        """Content type used when serving an artifact of this kind."""
        return _MEDIA_TYPES[self]


_MEDIA_TYPES = {
    Verb.LIST: "text/plain; charset=utf-8",
    Verb.INFO: "application/json",
    Verb.MOD: "text/plain; charset=utf-8",
    Verb.ZIP: "application/zip",
}


# --- Resolver descriptor ---


class ResolverKind(str, enum.Enum):
    """Wire protocol used by a resolver."""

    UDP = "udp"
    HTTPS = "https"
    TLS = "tls"
    QUIC = "quic"


class ResolverDescriptor(BaseModel):
    """Immutable selection of a DNS transport and the server it talks to.

    Built by :func:`~modcache.resolver.parse_resolver` from a single string such
    as ``8.8.8.8``, ``tls://1.1.1.1`` or
    ``https://cloudflare-dns.com/dns-query``.

    Example::

        ResolverDescriptor(kind=ResolverKind.TLS, host="1.1.1.1", port=853)
    """

    model_config = ConfigDict(frozen=True)

    kind: ResolverKind
    host: str = Field(default="", description="Server host (udp, tls, quic)")
    port: int = Field(default=0, description="Server port (udp, tls, quic)")
    endpoint: Optional[str] = Field(
        default=None, description="Full DoH endpoint URL (https only)"
    )

    @property
    def address(self) -> str:
        """``host:port`` form of the server, bracketing IPv6 literals."""
        if self.kind == ResolverKind.HTTPS:
            return self.endpoint or ""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


# --- Proxy descriptor ---


class ProxyKind(str, enum.Enum):
    """Forward proxy families understood by the transport builder."""

    HTTP = "http"
    SOCKS5 = "socks5"


class ProxyDescriptor(BaseModel):
    """Immutable forward-proxy endpoint.

    ``scheme`` keeps the literal scheme from the configuration string
    (``http``, ``https``, ``socks5`` or ``socks5h``) while ``kind`` groups
    them into the two families the transport handles differently.
    """

    model_config = ConfigDict(frozen=True)

    kind: ProxyKind
    scheme: str
    url: str
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def display_url(self) -> str:
        """The proxy URL with any password masked, safe for logs."""
        userinfo = f"{self.username}:***@" if self.username else ""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{userinfo}{host}:{self.port}"


# --- Transport parameters ---


class TransportConfig(BaseModel):
    """Fixed connection and timeout parameters for outbound traffic.

    All durations are in seconds.
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float = Field(default=5.0, description="TCP connect timeout")
    tls_handshake_timeout: float = Field(default=5.0, description="TLS handshake timeout")
    response_header_timeout: float = Field(
        default=10.0, description="Time allowed for upstream to start (and keep) sending"
    )
    idle_timeout: float = Field(default=90.0, description="Idle keep-alive connection expiry")
    max_idle_connections: int = Field(
        default=100,
        description=(
            "Idle connections kept in total. The pool keeps one limit, the smaller of this "
            "and max_idle_per_host; with a single upstream origin the per-host cap binds"
        ),
    )
    max_idle_per_host: int = Field(default=10, description="Idle connections kept per origin")
    request_timeout: float = Field(
        default=300.0, description="Overall deadline for list/info/mod fetches"
    )
    archive_timeout: float = Field(
        default=600.0, description="Overall deadline for .zip fetches"
    )
    dns_timeout: float = Field(default=5.0, description="Deadline for one name lookup")
    keepalive: bool = Field(default=True, description="Enable TCP keep-alive probes")


# --- Effective settings ---


class Settings(BaseModel):
    """Effective process configuration.

    Immutable for the process lifetime once :func:`~modcache.config.resolve_settings`
    has produced it. ``proxy`` and ``dns`` hold the raw descriptor strings;
    they are parsed into :class:`ProxyDescriptor` and
    :class:`ResolverDescriptor` when the transport is built.
    """

    upstream: str = Field(default="https://proxy.golang.org", description="Upstream proxy URL")
    cache_dir: str = Field(default="./cache", description="Cache directory path")
    proxy: str = Field(default="", description="HTTP/HTTPS/SOCKS5 forward proxy URL")
    dns: str = Field(default="", description="DNS server descriptor")
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=12345, ge=1, le=65535, description="Listen port")
    transport: TransportConfig = Field(default_factory=TransportConfig)

    @field_validator("upstream")
    @classmethod
    def _normalise_upstream(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"upstream must be an http(s) URL, got {value!r}")
        return value
