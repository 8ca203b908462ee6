"""Shared test fixtures for modcache.

Provides fixtures for isolated configuration, output state, temporary
cache roots, fake upstream clients and CLI runners. These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from modcache.cache import DiskCache
from modcache.output import OutputManager, reset_output, set_output


UPSTREAM = "https://proxy.example.org"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, colourless output manager for the test."""
    output = OutputManager(no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears every
    environment variable the settings resolver reads, and changes the
    working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "PORT",
        "CACHE_DIR",
        "UPSTREAM_PROXY",
        "DNS_SERVER",
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "SOCKS5_PROXY",
        "http_proxy",
        "https_proxy",
        "socks5_proxy",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Cache and upstream fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def disk_cache(tmp_path: Path) -> DiskCache:
    """A DiskCache rooted in a fresh temporary directory."""
    return DiskCache(tmp_path / "cache")


@pytest.fixture
def mock_client() -> Callable[..., httpx.AsyncClient]:
    """Factory for an upstream client backed by :class:`httpx.MockTransport`.

    Usage::

        client = mock_client(handler)
    """

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
