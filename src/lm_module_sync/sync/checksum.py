"""Content fingerprints and value equality for managed fields."""

from __future__ import annotations

import hashlib
import math
from typing import Any


def content_hash(content: str) -> str:
    """Return the SHA-256 hex digest of *content* encoded as UTF-8.

    No normalisation: line endings, trailing whitespace and blank lines
    all count, so any edit made outside the editor changes the digest.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def same_value(a: Any, b: Any) -> bool:
    """Scalar equality with identity semantics.

    ``True`` never equals ``1`` and NaN equals NaN.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, float) and isinstance(b, float):
        if math.isnan(a) and math.isnan(b):
            return True
    return a == b


def deep_equal(a: Any, b: Any) -> bool:
    """Recursive equality: lists positionally, dicts by key set and value."""
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, dict)) or isinstance(b, (list, dict)):
        return False
    return same_value(a, b)


def normalize_id_list(value: Any) -> list[int]:
    """Canonicalize an ID collection into a sorted list of ints.

    Accepts a list of ints/strings or a comma-separated string; entries
    that are not numeric are dropped.
    """
    if isinstance(value, str):
        items: list[Any] = value.split(",") if value.strip() else []
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        return []

    ids: list[int] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            ids.append(item)
            continue
        try:
            ids.append(int(str(item).strip()))
        except ValueError:
            continue
    return sorted(ids)
