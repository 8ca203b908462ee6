"""Built-in CLI sub-commands for modcache.

* :mod:`~modcache.commands.serve` -- run the caching proxy server.
* :mod:`~modcache.commands.resolve` -- look a hostname up through a
  resolver descriptor.
* :mod:`~modcache.commands.config` -- show the effective settings.
* :mod:`~modcache.commands.cache` -- inspect the artifact cache.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``config`` and ``cache``) or a plain callback
function registered directly on the root app (``serve``, ``resolve``).
"""
