"""Declarative filter composition.

Learn: A service declares how query parameters turn into where-fragments:

    filter_map = {
        "q":              lambda v: {"title": {"icontains": v}},
        "created_after":  lambda v: {"created_at": {"gte": v}},
        "created_before": lambda v: {"created_at": {"lte": v}},
    }

apply_filters() runs every handler whose key is present and merges the
fragments. Dict fragments for the same field merge one level deep, so
created_after + created_before end up as ONE range condition:

    {"created_at": {"gte": a, "lte": b}}

instead of the second overwriting the first.

Where-dict grammar understood by the stores:

    {"field": value}            equality
    {"field": None}             IS NULL
    {"field": {"op": value}}    op in OPERATORS
"""

from typing import Any, Callable, Mapping

FilterHandler = Callable[[Any], dict[str, Any]]

OPERATORS = frozenset({
    "eq",
    "not",
    "in",
    "not_in",
    "gt",
    "gte",
    "lt",
    "lte",
    "contains",
    "icontains",
    "startswith",
    "endswith",
})


def merge_filters(current: Mapping[str, Any], addition: Mapping[str, Any]) -> dict[str, Any]:
    """Merge `addition` into a copy of `current` (dict values merge, others overwrite)."""
    merged = dict(current)
    for key, value in addition.items():
        if isinstance(value, Mapping):
            existing = merged.get(key)
            base = dict(existing) if isinstance(existing, Mapping) else {}
            base.update(value)
            merged[key] = base
        else:
            merged[key] = value
    return merged


def apply_filters(
    query: Mapping[str, Any], filter_map: Mapping[str, FilterHandler]
) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    for key, value in query.items():
        handler = filter_map.get(key)
        if value is None or handler is None:
            continue
        filters = merge_filters(filters, handler(value))
    return filters
