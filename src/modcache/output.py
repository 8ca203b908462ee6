"""Console diagnostics for the CLI and the running server.

stdout carries data only (resolved addresses, settings JSON, cache stats),
so it can be piped. Everything else goes to stderr: the startup summary,
``[CACHE HIT]``/``[CACHE MISS]`` lines, upstream failures and warnings.

Colour follows ``NO_COLOR``, ``TERM=dumb`` and ``--no-color``. Without
colour, lines are written with a plain :func:`print` so container logs stay
free of control sequences. ``serve`` turns on timestamps, giving each line
the ``YYYY/MM/DD HH:MM:SS`` prefix of a long-running process log.

:func:`~modcache.app.main_callback` installs one :class:`OutputManager` with
:func:`set_output`; request handlers and the cache engine reach it through
:func:`get_output` or the module-level shortcuts (:func:`info`,
:func:`warning`, ...). Logging never raises into the caller.
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

_TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"


class OutputManager:
    """Writes data to stdout and labelled diagnostics to stderr.

    Shared by the event loop and the worker threads doing disk I/O; Rich
    consoles serialise their own writes.

    Args:
        no_color: Plain text, no Rich markup.
        quiet: Drop ``info`` and ``success`` lines. Warnings and errors
            are always written.
        verbose: Show ``debug`` lines.
        timestamps: Prefix each diagnostic line with the local time.

    Example::

        out = OutputManager(timestamps=True)
        out.info("[CACHE MISS] golang.org/x/mod/@v/list")
        out.warning("Failed to cache golang.org/x/mod/@v/list: disk full")
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        timestamps: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._timestamps = timestamps
        self._console = Console(
            file=sys.stderr,
            stderr=True,
            no_color=self._no_color,
            highlight=False,
        )

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # -- stdout ----------------------------------------------------------

    def print_data(self, text: str) -> None:
        """Write one line of data to stdout."""
        print(text, file=sys.stdout, flush=True)

    def print_json(self, data: Any) -> None:
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    # -- stderr ----------------------------------------------------------

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, style="green")

    def warning(self, message: str) -> None:
        self._emit(message, label="Warning:", style="yellow")

    def error(self, message: str) -> None:
        self._emit(message, label="Error:", style="bold red")

    def debug(self, message: str) -> None:
        """Write *message* with a ``[debug]`` label, only in verbose mode."""
        if self._verbose:
            self._emit(message, label="[debug]", style="dim")

    def _emit(self, message: str, label: str = "", style: str = "") -> None:
        stamp = datetime.now().strftime(_TIMESTAMP_FORMAT) + " " if self._timestamps else ""

        if self._no_color:
            # sys.stderr is looked up per call so redirected streams are honoured.
            line = f"{label} {message}" if label else message
            print(stamp + line, file=sys.stderr, flush=True)
            return

        text = escape(message)
        if label:
            text = f"[{style}]{escape(label)}[/{style}] {text}"
        elif style:
            text = f"[{style}]{text}[/{style}]"
        if stamp:
            text = f"[dim]{stamp}[/dim]{text}"
        self._console.print(text)


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (to anything) or ``TERM`` is ``dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# -- process-wide instance ------------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager. Tests call this between cases."""
    global _output
    _output = None


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_json(data: Any) -> None:
    get_output().print_json(data)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
