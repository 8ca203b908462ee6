"""Cache commands -- inspect the artifact store on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from modcache.cache import DiskCache
from modcache.exceptions import ModcacheError
from modcache.exit_codes import EXIT_STORAGE_ERROR


cache_app = typer.Typer(no_args_is_help=True)


def _open_cache(cache: Optional[str], config: Optional[Path]) -> DiskCache:
    from modcache.config import resolve_settings

    settings = resolve_settings({"cache_dir": cache}, config_path=config)
    return DiskCache(settings.cache_dir)


@cache_app.command("stats")
def cache_stats(
    cache: Optional[str] = typer.Option(None, "--cache", help="Cache directory path."),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file."),
) -> None:
    """Print the number and total size of cached artifacts as JSON."""
    from modcache.output import error, print_json

    try:
        store = _open_cache(cache, config)
        print_json(store.stats())
    except ModcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except OSError as exc:
        error(f"Failed to scan cache: {exc}")
        raise typer.Exit(code=EXIT_STORAGE_ERROR) from None


@cache_app.command("path")
def cache_path(
    key: str = typer.Argument(help="Request path, e.g. golang.org/x/mod/@v/list."),
    cache: Optional[str] = typer.Option(None, "--cache", help="Cache directory path."),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file."),
) -> None:
    """Print the file that stores KEY, and whether it is cached.

    Example::

        modcache cache path golang.org/x/mod/@v/v0.14.0.zip
    """
    from modcache.output import error, info, print_data

    try:
        store = _open_cache(cache, config)
        path = store.path_for(key)
        cached = store.exists(key)
    except ModcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_data(str(path))
    info("cached" if cached else "not cached")
