"""
Identity normalisation.

Collaborator stores hand back user references in several shapes: a raw id
(int or str), an embedded reference (``{"id": 7}``, ``{"_id": "7"}``), or a
populated object carrying ``id`` / ``_id``. Every identity comparison in the
engine goes through ``normalize_id`` so that those shapes compare equal.

The empty key ``""`` stands for "no identity" and never matches anything,
including another empty key.
"""

from collections.abc import Iterable, Mapping

EMPTY_ID = ""

_ID_FIELDS = ("_id", "id")
_MAX_DEPTH = 4


def normalize_id(value, _depth: int = 0) -> str:
    """Return the canonical string key for *value*, or ``EMPTY_ID``. Never raises."""
    if value is None or _depth > _MAX_DEPTH:
        return EMPTY_ID
    if isinstance(value, bool):
        return EMPTY_ID
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Mapping):
        for field in _ID_FIELDS:
            if value.get(field) is not None:
                return normalize_id(value[field], _depth + 1)
        return EMPTY_ID
    for field in _ID_FIELDS:
        nested = getattr(value, field, None)
        if nested is not None:
            return normalize_id(nested, _depth + 1)
    return EMPTY_ID


def ids_match(left, right) -> bool:
    """True only when both sides resolve to the same non-empty key."""
    key = normalize_id(left)
    return key != EMPTY_ID and key == normalize_id(right)


def normalize_id_set(values: Iterable | None) -> frozenset[str]:
    """Normalise a collection of references, dropping empty keys."""
    if values is None or isinstance(values, (str, bytes, Mapping)):
        return frozenset()
    keys = (normalize_id(v) for v in values)
    return frozenset(k for k in keys if k)


def contains_id(values: Iterable | None, target) -> bool:
    key = normalize_id(target)
    return bool(key) and key in normalize_id_set(values)
