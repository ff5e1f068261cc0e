"""
Field Access
============
Case tolerant property lookup inside loosely typed JSON objects.

Producers are inconsistent about casing (``Name`` vs ``name``), so every
lookup goes through :func:`get_field` instead of indexing the dict directly.
"""

from typing import Any, Mapping

MISSING = object()


def _lookup(obj: Any, name: str) -> Any:
    if not isinstance(obj, Mapping) or not isinstance(name, str) or not name:
        return MISSING

    if name in obj:
        return obj[name]

    capitalized = name[0].upper() + name[1:]
    if capitalized in obj:
        return obj[capitalized]

    lowered = name.lower()
    if lowered in obj:
        return obj[lowered]

    for key, value in obj.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value

    return MISSING


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """
    Look up ``name`` in ``obj``.

    Tries the exact key, the key with its first letter upper-cased, the key
    lower-cased and finally a case-insensitive scan of every key. Returns
    ``default`` when nothing matches; never raises.
    """
    value = _lookup(obj, name)
    return default if value is MISSING else value


def has_field(obj: Any, name: str) -> bool:
    """True when ``name`` is present in ``obj``, even if its value is null."""
    return _lookup(obj, name) is not MISSING


def first_field(obj: Any, *names: str, default: Any = None) -> Any:
    """Return the value of the first of ``names`` that is present and not null."""
    for name in names:
        value = _lookup(obj, name)
        if value is not MISSING and value is not None:
            return value
    return default
