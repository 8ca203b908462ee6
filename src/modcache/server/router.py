"""Request path classification.

The module proxy protocol is selected entirely by path suffix::

    <module>/@v/list            -> Verb.LIST
    <module>/@v/<version>.info  -> Verb.INFO
    <module>/@v/<version>.mod   -> Verb.MOD
    <module>/@v/<version>.zip   -> Verb.ZIP

Anything else is a 404. The checks run in that order, so a path is
classified by the first suffix it matches.
"""

from __future__ import annotations

from modcache.exceptions import NotFoundError
from modcache.models import Verb

HEALTH_PATHS = frozenset({"health", "healthz"})

_SUFFIXES = (
    ("/@v/list", Verb.LIST),
    (".info", Verb.INFO),
    (".mod", Verb.MOD),
    (".zip", Verb.ZIP),
)


def request_key(path: str) -> str:
    """Strip the leading slash so *path* can be used as a cache key."""
    return path.lstrip("/")


def resolve_verb(path: str) -> Verb:
    """Return the verb selected by *path*.

    Raises:
        NotFoundError: If no verb suffix matches.
    """
    for suffix, verb in _SUFFIXES:
        if path.endswith(suffix):
            return verb
    raise NotFoundError("Not found")


def is_health_check(path: str) -> bool:
    """Return True for the liveness endpoints."""
    return request_key(path) in HEALTH_PATHS
