"""Serve command -- run the caching module proxy."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from modcache.exceptions import ModcacheError


def serve_command(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Address to listen on."),
    port: Optional[int] = typer.Option(None, "--port", help="Port to listen on."),
    cache: Optional[str] = typer.Option(None, "--cache", help="Cache directory path."),
    upstream: Optional[str] = typer.Option(None, "--upstream", help="Upstream proxy URL."),
    proxy: Optional[str] = typer.Option(
        None,
        "--proxy",
        help="HTTP/HTTPS/SOCKS5 proxy URL (e.g. http://proxy:8080 or socks5://proxy:1080).",
    ),
    dns: Optional[str] = typer.Option(
        None,
        "--dns",
        help="DNS server (e.g. 8.8.8.8:53, https://cloudflare-dns.com/dns-query, tls://1.1.1.1:853).",
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file."),
) -> None:
    """Start the caching proxy server.

    Settings are resolved from flags, environment variables (``PORT``,
    ``CACHE_DIR``, ``UPSTREAM_PROXY``, ``DNS_SERVER``, ``HTTP_PROXY``,
    ``HTTPS_PROXY``, ``SOCKS5_PROXY``), the config file and defaults, in
    that order. The server shuts down gracefully on SIGINT or SIGTERM.

    Example::

        modcache serve --port 12345 --cache /var/cache/gomod
        GOPROXY=http://localhost:12345,direct go mod download
    """
    import uvicorn

    from modcache.config import ensure_cache_dir, resolve_settings
    from modcache.output import OutputManager, set_output
    from modcache.server import create_app

    flags = ctx.obj or {}
    output = OutputManager(
        no_color=flags.get("no_color", False),
        quiet=flags.get("quiet", False),
        verbose=flags.get("verbose", False),
        timestamps=True,
    )
    set_output(output)

    cli = {
        "host": host,
        "port": port,
        "cache_dir": cache,
        "upstream": upstream,
        "proxy": proxy,
        "dns": dns,
    }
    try:
        settings = resolve_settings(cli, config_path=config)
        ensure_cache_dir(settings)
        application = create_app(settings)
    except ModcacheError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    outbound = application.state.outbound
    output.info("Starting Go module proxy server")
    output.info(f"  Listen: {settings.host}:{settings.port}")
    output.info(f"  Cache directory: {settings.cache_dir}")
    output.info(f"  Upstream proxy: {settings.upstream}")
    if outbound.proxy is not None:
        output.info(f"  Forward proxy: {outbound.proxy.display_url}")
    if outbound.resolver is not None:
        output.info(f"  DNS server: {outbound.resolver.describe()}")
    output.debug(f"Outbound path: {outbound.describe()}")
    output.info(f"  Set GOPROXY=http://localhost:{settings.port},direct")

    uvicorn.run(
        application,
        host=settings.host,
        port=settings.port,
        log_level="debug" if output.is_verbose else "warning",
        access_log=False,
        timeout_graceful_shutdown=10,
    )
    output.info("Server exited")
