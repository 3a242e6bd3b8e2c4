from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

# Pagination / sort / count directives. Never usable as filterable field names.
DIRECTIVE_KEYS: Tuple[str, ...] = ("asc", "desc", "limit", "offset", "count", "fetchAll")

# `filters` only marks the advanced shape; it is never a directive.
RESERVED_KEYS = frozenset(DIRECTIVE_KEYS + ("filters",))

DEFAULT_OPERATOR = "="

Filter = Dict[str, Any]
Canonical = Union[List[Filter], Dict[str, Any]]


# ----------------------
# Input shapes
# ----------------------


@dataclass(frozen=True)
class EmptyCriteria:
    """`{}` / None: all records, no directives."""


@dataclass(frozen=True)
class FilterArray:
    """Already canonical `[{field, value, operator?}, ...]`."""

    entries: List[Filter]


@dataclass(frozen=True)
class AdvancedOptions:
    """`{filters?: [...], asc?, desc?, limit?, offset?, count?, fetchAll?}`.

    Also covers the pagination-only shape (an object whose keys are all
    directives), which is simply advanced options without `filters`.
    """

    filters: List[Any] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SimpleObject:
    """Flat `{field: value}` equality map with no reserved keys."""

    values: Dict[str, Any]


@dataclass(frozen=True)
class MixedObject:
    """Field keys and directive keys in one flat object.

    Not part of the public contract, but accepted so no input is dropped.
    """

    values: Dict[str, Any]


RawCriteria = Union[EmptyCriteria, FilterArray, AdvancedOptions, SimpleObject, MixedObject]


def _filter_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    # Anything else is kept so validation can reject it.
    return [{"field": "filters", "value": value}]


def classify(raw: Any) -> RawCriteria:
    """Decide which input shape `raw` is, first match wins."""
    if isinstance(raw, (list, tuple)):
        return FilterArray(list(raw))

    if not isinstance(raw, dict):
        # None and anything that is not an object mean "no criteria".
        return EmptyCriteria()

    obj: Dict[str, Any] = raw
    if "filters" in obj:
        return AdvancedOptions(
            filters=_filter_list(obj["filters"]),
            options={k: obj[k] for k in DIRECTIVE_KEYS if k in obj},
        )
    if not obj:
        return EmptyCriteria()

    reserved: List[str] = [k for k in obj if k in RESERVED_KEYS]
    if len(reserved) == len(obj):
        return AdvancedOptions(options={k: obj[k] for k in DIRECTIVE_KEYS if k in obj})
    if not reserved:
        return SimpleObject(obj)
    return MixedObject(obj)


# ----------------------
# Directive entries
# ----------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def directive_entry(key: str, value: Any) -> Optional[Filter]:
    """Build the `{field, value}` entry for one directive, or None when it is a no-op.

    `asc`/`desc`/`count`/`fetchAll` only count when truthy, `limit`/`offset`
    only when numeric.
    """
    if key in ("asc", "desc"):
        return {"field": key, "value": value} if value else None
    if key in ("limit", "offset"):
        return {"field": key, "value": value} if _is_number(value) else None
    if key in ("count", "fetchAll"):
        return {"field": key, "value": True} if value else None
    return None


def _directive_entries(options: Dict[str, Any]) -> List[Filter]:
    out: List[Filter] = []
    for key in DIRECTIVE_KEYS:
        if key not in options:
            continue
        entry = directive_entry(key, options[key])
        if entry is not None:
            out.append(entry)
    return out


def _filter_entry(f: Dict[str, Any]) -> Filter:
    return {
        "field": f.get("field"),
        "value": f.get("value"),
        "operator": f.get("operator") or DEFAULT_OPERATOR,
    }


def normalize(raw: Any) -> Canonical:
    """Turn any accepted criteria shape into canonical criteria.

    Returns either a list of filter/directive entries or, for the simple
    equality shape, the flat mapping unchanged. Never raises.
    """
    shape = classify(raw)

    if isinstance(shape, FilterArray):
        # Trust explicit filter arrays; returned as given.
        return raw if isinstance(raw, list) else shape.entries

    if isinstance(shape, EmptyCriteria):
        return {}

    if isinstance(shape, SimpleObject):
        return raw

    if isinstance(shape, AdvancedOptions):
        # Non-object entries pass through untouched for validation to report.
        entries = [_filter_entry(f) if isinstance(f, dict) else f for f in shape.filters]
        entries.extend(_directive_entries(shape.options))
        return entries or {}

    # MixedObject: keep the caller's key order.
    entries = []
    for key, value in shape.values.items():
        if key in RESERVED_KEYS:
            entries.append({"field": key, "value": True if key in ("count", "fetchAll") else value})
        else:
            entries.append({"field": key, "value": value, "operator": DEFAULT_OPERATOR})
    return entries or {}


def is_directive(entry: Filter) -> bool:
    return entry.get("field") in DIRECTIVE_KEYS


def as_filter_array(canonical: Canonical) -> List[Filter]:
    """Expand the simple equality map into explicit `=` entries."""
    if isinstance(canonical, list):
        return list(canonical)
    return [{"field": k, "value": v, "operator": DEFAULT_OPERATOR} for k, v in (canonical or {}).items()]
