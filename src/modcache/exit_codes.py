"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~modcache.exceptions.ModcacheError` subclass.
Process supervisors and shell wrappers can inspect the exit code to tell a
bad configuration apart from a crash without parsing stderr.

Example::

    $ modcache serve --dns tls://1.1.1.1:abc
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the resolver descriptor could not be parsed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration values."""

EXIT_STORAGE_ERROR = 3
"""The cache directory could not be created, read or written."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (resolution failure, connection refused, timeout)."""

EXIT_INTERRUPTED = 130
"""The process was interrupted by SIGINT."""
