"""Config commands -- view the effective configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from modcache.exceptions import ModcacheError


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file."),
) -> None:
    """Show the settings ``serve`` would run with.

    Prints the config file location to stderr and the merged settings as
    JSON to stdout. Proxy credentials are masked.

    Example::

        modcache config show
        PORT=8080 modcache config show
    """
    from modcache.client import parse_proxy
    from modcache.config import default_config_path, resolve_settings
    from modcache.output import error, info, print_json

    try:
        settings = resolve_settings(config_path=config)
    except ModcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config file: {config or default_config_path()}")
    data = settings.model_dump(mode="json")
    descriptor = parse_proxy(settings.proxy)
    if descriptor is not None:
        data["proxy"] = descriptor.display_url
    print_json(data)
