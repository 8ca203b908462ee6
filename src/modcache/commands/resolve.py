"""Resolve command -- test a resolver descriptor from the command line."""

from __future__ import annotations

import asyncio
import socket
from pathlib import Path
from typing import Optional

import anyio
import typer

from modcache.exceptions import ModcacheError, ResolutionError
from modcache.resolver import Resolver


def resolve_command(
    host: str = typer.Argument(help="Hostname to look up."),
    dns: Optional[str] = typer.Option(
        None, "--dns", help="Resolver descriptor; defaults to the configured one."
    ),
    timeout: float = typer.Option(5.0, "--timeout", help="Lookup deadline in seconds."),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file."),
) -> None:
    """Look up HOST the way the server dials upstream, and print the addresses.

    Example::

        modcache resolve proxy.golang.org --dns tls://1.1.1.1
        modcache resolve proxy.golang.org --dns https://cloudflare-dns.com/dns-query
    """
    from modcache.config import resolve_settings
    from modcache.output import error, info, print_data
    from modcache.resolver import create_resolver

    try:
        settings = resolve_settings({"dns": dns}, config_path=config)
        resolver = create_resolver(settings.dns, timeout=timeout)
        info(f"Resolver: {resolver.describe() if resolver else 'system'}")
        addresses = asyncio.run(_lookup(resolver, host))
    except ModcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    for address in addresses:
        print_data(address)


async def _lookup(resolver: Optional[Resolver], host: str) -> list[str]:
    if resolver is None:
        try:
            results = await anyio.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        except OSError as exc:
            raise ResolutionError(f"failed to resolve {host}: {exc}") from exc
        return list(dict.fromkeys(str(result[4][0]) for result in results))
    try:
        return await resolver.lookup(host)
    finally:
        await resolver.aclose()
