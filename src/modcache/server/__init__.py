"""The inbound HTTP server.

- :mod:`modcache.server.router` -- classifies request paths into verbs.
- :mod:`modcache.server.coordinator` -- :class:`ModuleFetcher`, the
  read-through cache logic for each verb.
- :mod:`modcache.server.app` -- :func:`create_app`, the FastAPI application.
"""

from modcache.server.app import create_app
from modcache.server.coordinator import ArchiveStream, CachedResponse, ModuleFetcher
from modcache.server.router import resolve_verb

__all__ = ["ArchiveStream", "CachedResponse", "ModuleFetcher", "create_app", "resolve_verb"]
