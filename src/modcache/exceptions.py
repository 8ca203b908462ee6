"""Exception hierarchy for modcache.

All exceptions inherit from :class:`ModcacheError`, which carries two
mappings: an HTTP ``status_code`` used by the request handlers in
:mod:`modcache.server.app` to render a plain-text error response, and an
``exit_code`` (from :mod:`modcache.exit_codes`) used by the CLI entry point
in :func:`modcache.app.main`.

Subclass hierarchy::

    ModcacheError            (500, exit 1)
    +-- ConfigError          (500, exit 2)
    +-- NotFoundError        (404, exit 1)
    +-- StorageError         (500, exit 3)
    +-- ResolutionError      (502, exit 6)
    +-- DialError            (502, exit 6)
    +-- UpstreamError        (502, exit 6)
        +-- UpstreamStatusError     (upstream's own status)
        +-- UpstreamTransportError  (502)
        +-- ValidationError         (502)
"""

from __future__ import annotations

from modcache.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_STORAGE_ERROR,
)


class ModcacheError(Exception):
    """Base exception for all modcache errors.

    Args:
        message: Human-readable error description. Rendered verbatim as the
            plain-text body of an error response.
        status_code: Optional override for the class-level HTTP status.
    """

    status_code: int = 500
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConfigError(ModcacheError):
    """Raised for invalid settings, config files, or resolver descriptors."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundError(ModcacheError):
    """Raised when no artifact is stored for a key, or a path matches no verb.

    Inside the cache engine this is the normal miss signal rather than a
    failure; it only becomes a 404 when it escapes to a request handler.
    """

    status_code = 404


class StorageError(ModcacheError):
    """Raised when the local cache cannot be read, written, or renamed."""

    status_code = 500
    exit_code = EXIT_STORAGE_ERROR


class ResolutionError(ModcacheError):
    """Raised when a name lookup fails, returns no addresses, or times out."""

    status_code = 502
    exit_code = EXIT_CONNECTION_ERROR


class DialError(ModcacheError):
    """Raised when an outbound connection (direct or via SOCKS5) cannot be opened."""

    status_code = 502
    exit_code = EXIT_CONNECTION_ERROR


class UpstreamError(ModcacheError):
    """Base class for failures talking to the upstream module proxy."""

    status_code = 502
    exit_code = EXIT_CONNECTION_ERROR


class UpstreamStatusError(UpstreamError):
    """Raised when upstream answers with a non-200 status.

    The status is passed through to the caller unchanged.
    """

    def __init__(self, status_code: int, url: str):
        super().__init__(f"Upstream error: {status_code}", status_code=status_code)
        self.url = url


class UpstreamTransportError(UpstreamError):
    """Raised on network-level failures (timeout, refused, reset) reaching upstream."""


class ValidationError(UpstreamError):
    """Raised when a ``.info`` body fetched from upstream is not a JSON object."""
