"""Tests for the output manager.

Covers:
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet mode suppression rules
- Verbose mode debug output
- Timestamp prefixes for the server log
- Global instance management
- Convenience functions
"""

from __future__ import annotations

import json
import re

import pytest

from modcache import output as output_module
from modcache.output import (
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


@pytest.fixture()
def plain():
    """A colourless manager writing plain lines."""
    return OutputManager(no_color=True)


# ------------------------------------------------------------------ #
# NO_COLOR / TERM=dumb detection
# ------------------------------------------------------------------ #


class TestColorDisabling:
    """Test that NO_COLOR and TERM=dumb are respected."""

    def test_no_color_env_disables_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_color_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout / stderr discipline
# ------------------------------------------------------------------ #


class TestStreams:
    """Data goes to stdout, diagnostics to stderr."""

    def test_print_data_goes_to_stdout(self, plain, capsys):
        plain.print_data("/var/cache/gomod/example.com/@v/list")
        captured = capsys.readouterr()
        assert captured.out == "/var/cache/gomod/example.com/@v/list\n"
        assert captured.err == ""

    def test_print_json_is_indented(self, plain, capsys):
        plain.print_json({"entries": 2, "bytes": 10})
        out = capsys.readouterr().out
        assert json.loads(out) == {"entries": 2, "bytes": 10}
        assert "\n  " in out

    def test_info_goes_to_stderr(self, plain, capsys):
        plain.info("[CACHE HIT] example.com/@v/list")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "[CACHE HIT] example.com/@v/list\n"

    def test_warning_and_error_labels(self, plain, capsys):
        plain.warning("Failed to cache example.com/@v/list: disk full")
        plain.error("Upstream returned 500")
        err = capsys.readouterr().err.splitlines()
        assert err == [
            "Warning: Failed to cache example.com/@v/list: disk full",
            "Error: Upstream returned 500",
        ]

    def test_markup_in_messages_is_not_interpreted(self, monkeypatch, capsys):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        mgr = OutputManager()
        mgr.info("[CACHE MISS] example.com/@v/list")
        assert "[CACHE MISS] example.com/@v/list" in capsys.readouterr().err


# ------------------------------------------------------------------ #
# Quiet / verbose
# ------------------------------------------------------------------ #


class TestQuietMode:
    def test_quiet_suppresses_info_and_success(self, capsys):
        mgr = OutputManager(no_color=True, quiet=True)
        mgr.info("hello")
        mgr.success("done")
        assert capsys.readouterr().err == ""

    def test_quiet_keeps_warnings_and_errors(self, capsys):
        mgr = OutputManager(no_color=True, quiet=True)
        mgr.warning("careful")
        mgr.error("broken")
        err = capsys.readouterr().err
        assert "careful" in err
        assert "broken" in err

    def test_quiet_does_not_affect_data(self, capsys):
        mgr = OutputManager(no_color=True, quiet=True)
        mgr.print_data("192.0.2.1")
        assert capsys.readouterr().out == "192.0.2.1\n"


class TestVerboseMode:
    def test_debug_hidden_by_default(self, plain, capsys):
        plain.debug("dialing 192.0.2.1:443")
        assert capsys.readouterr().err == ""

    def test_debug_shown_when_verbose(self, capsys):
        mgr = OutputManager(no_color=True, verbose=True)
        mgr.debug("dialing 192.0.2.1:443")
        assert capsys.readouterr().err == "[debug] dialing 192.0.2.1:443\n"


class TestTimestamps:
    def test_prefix_format(self, capsys):
        mgr = OutputManager(no_color=True, timestamps=True)
        mgr.info("Starting Go module proxy server")
        line = capsys.readouterr().err
        assert re.match(
            r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} Starting Go module proxy server\n$", line
        )

    def test_prefix_precedes_label(self, capsys):
        mgr = OutputManager(no_color=True, timestamps=True)
        mgr.warning("slow upstream")
        assert re.search(r"\d{2}:\d{2}:\d{2} Warning: slow upstream$", capsys.readouterr().err.strip())


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        mgr = get_output()
        assert isinstance(mgr, OutputManager)
        assert get_output() is mgr

    def test_set_and_reset(self):
        mgr = OutputManager(quiet=True)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr

    def test_convenience_functions_use_global(self, capsys):
        set_output(OutputManager(no_color=True))
        output_module.info("info line")
        output_module.warning("warn line")
        output_module.print_data("data line")
        captured = capsys.readouterr()
        assert captured.out == "data line\n"
        assert "info line" in captured.err
        assert "Warning: warn line" in captured.err
