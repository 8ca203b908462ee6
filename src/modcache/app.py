"""Command-line entry point.

``modcache`` is a Typer app with four sub-commands: ``serve`` runs the
caching proxy, ``resolve`` exercises a DNS descriptor, and ``config`` and
``cache`` inspect settings and the on-disk store. :func:`main` is the
console script. A :class:`~modcache.exceptions.ModcacheError` that escapes a
command ends the process with that error's exit code; anything else leaves
a traceback under ``<data dir>/logs`` and exits 1.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from modcache import __version__
from modcache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


app = typer.Typer(
    name="modcache",
    help="Caching proxy for the Go module proxy protocol.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"modcache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Print the version and exit.",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Plain, uncoloured diagnostics."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print warnings and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print debug diagnostics."),
) -> None:
    """Install the output manager for the chosen flags.

    The flags are also kept in ``ctx.obj``: ``serve`` rebuilds the manager
    with timestamps once it knows it is running as a server.
    """
    from modcache.output import OutputManager, set_output

    set_output(OutputManager(no_color=no_color, quiet=quiet, verbose=verbose))
    ctx.ensure_object(dict)
    ctx.obj.update(no_color=no_color, quiet=quiet, verbose=verbose)


def _setup_signal_handlers() -> None:
    # uvicorn installs its own SIGINT/SIGTERM handlers while serving.
    def _on_sigint(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _on_sigint)


def _write_crash_log(exc: Exception) -> str:
    """Save the current traceback to ``<data dir>/logs/crash-<time>.log``.

    Returns:
        The path written, for the error message.
    """
    from modcache.config import get_data_dir

    log_dir = get_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(path)


_registered = False


def register_commands() -> None:
    """Attach the built-in sub-commands to :data:`app`. Idempotent."""
    global _registered
    if _registered:
        return
    from modcache.commands.cache import cache_app
    from modcache.commands.config import config_app
    from modcache.commands.resolve import resolve_command
    from modcache.commands.serve import serve_command

    app.command("serve")(serve_command)
    app.command("resolve")(resolve_command)
    app.add_typer(config_app, name="config", help="Show the effective configuration.")
    app.add_typer(cache_app, name="cache", help="Inspect the artifact cache.")
    _registered = True


def main() -> None:
    """Console-script entry point; always ends in :class:`SystemExit`."""
    from modcache.exceptions import ModcacheError
    from modcache.output import error

    _setup_signal_handlers()
    register_commands()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except ModcacheError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        error(f"Unexpected error. Debug log: {_write_crash_log(exc)}")
        sys.exit(EXIT_GENERIC_FAILURE)
