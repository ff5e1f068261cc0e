"""
Value Coercion
==============
Lenient conversions for fields that clients send as either JSON scalars or
strings. A value that cannot be parsed yields ``None`` so the field is left
unset instead of failing the whole payload.
"""

import json
import math
from typing import Any, Iterable, List, Optional

from hypatia.core.field_access import get_field
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off"})


def as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def as_int(value: Any) -> Optional[int]:
    """Integers, integral floats and strings holding either."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = as_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return None


def as_json_text(value: Any) -> Optional[str]:
    """Strings pass through; objects and arrays are serialized to JSON text."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return as_str(value)


def as_int_list(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    result = []
    for item in value:
        number = as_int(item)
        if number is not None:
            result.append(number)
    return result


def parse_related_id(item: Any) -> Optional[int]:
    """A related reference is a number, a numeric string or ``{"id": ...}``."""
    if isinstance(item, dict):
        item = get_field(item, "id")
    return as_int(item)


def parse_related_ids(value: Any, context: str = "payload") -> List[int]:
    """
    Parse a ``related`` array into material ids.

    Entries that cannot be parsed are skipped with a warning and the rest are
    kept. Duplicates are dropped, keeping the first occurrence.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Ignoring non-list related value in {context}: {value!r}")
        return []

    ids = []
    for item in value:
        material_id = parse_related_id(item)
        if material_id is None:
            logger.warning(f"Skipping unparseable related id in {context}: {item!r}")
            continue
        ids.append(material_id)
    return dedupe(ids)


def invalid_related_entries(value: Any) -> List[Any]:
    """Entries of a ``related`` array that :func:`parse_related_id` rejects."""
    if not isinstance(value, list):
        return [] if value is None else [value]
    return [item for item in value if parse_related_id(item) is None]


def dedupe(ids: Iterable[int]) -> List[int]:
    """Drop repeated ids, keeping first-seen order."""
    seen = set()
    result = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
