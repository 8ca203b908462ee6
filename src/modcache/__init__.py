"""modcache -- a read-through, disk-backed cache for Go module proxies.

This package serves the Go module proxy protocol (``/@v/list``, ``.info``,
``.mod``, ``.zip``) from a local directory and fills it on demand from a
single upstream proxy. Outbound traffic can be routed through an HTTP or
SOCKS5 forward proxy and resolved through a custom DNS server (plain UDP,
DNS-over-HTTPS, DNS-over-TLS).

Typical workflow::

    modcache serve --cache /var/cache/gomod --dns tls://1.1.1.1
    export GOPROXY=http://localhost:12345,direct

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic settings and descriptor models.
    config: XDG-aware configuration resolution.
    exceptions: Exception hierarchy with HTTP status and exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stderr diagnostics with Rich support.
    resolver: Pluggable DNS resolvers (UDP, DoH, DoT, DoQ via DoT).
    client: Outbound transport (resolver + proxy + pooling).
    cache: Atomic on-disk artifact store.
    server: FastAPI application, router and fetch-and-cache coordinator.
"""

__version__ = "0.3.0"
