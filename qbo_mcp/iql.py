"""Compile canonical search criteria into QuickBooks query language (IQL).

Clause order is fixed by the QuickBooks query endpoint:

    SELECT * FROM <Entity> [WHERE a AND b] [ORDER BY f ASC|DESC]
        [MAXRESULTS n] [STARTPOSITION n]
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from qbo_mcp.criteria import DEFAULT_OPERATOR, Canonical
from qbo_mcp.entities import coerce_criteria


@dataclass(frozen=True)
class CompiledQuery:
    entity: str
    where: List[str] = field(default_factory=list)
    order_by: Optional[Tuple[str, str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    count_only: bool = False

    def render(self) -> str:
        if self.count_only:
            return f"SELECT COUNT(*) FROM {self.entity}"
        sql = f"SELECT * FROM {self.entity}"
        if self.where:
            sql += f" WHERE {' AND '.join(self.where)}"
        if self.order_by:
            sql += f" ORDER BY {self.order_by[0]} {self.order_by[1]}"
        if self.limit:
            sql += f" MAXRESULTS {self.limit}"
        if self.offset:
            # STARTPOSITION is 1-based.
            sql += f" STARTPOSITION {self.offset + 1}"
        return sql


def quote(value: str) -> str:
    # Only single quotes are escaped; matches what the query endpoint expects.
    return "'" + value.replace("'", "\\'") + "'"


def render_literal(value: Any) -> str:
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "(" + ", ".join(render_literal(v) for v in value) + ")"
    if value is None:
        return "null"
    return str(value)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def build_query(entity: str, criteria: Canonical) -> CompiledQuery:
    """Fold canonical criteria into a CompiledQuery.

    A truthy `count` entry anywhere short-circuits to a count query. When
    both `asc` and `desc` appear, the later entry wins. `fetchAll` has no
    effect on the query text.
    """
    if isinstance(criteria, dict) or criteria is None:
        where = [f"{k} = {render_literal(v)}" for k, v in (criteria or {}).items()]
        return CompiledQuery(entity, where=where)

    entries = [e for e in criteria if isinstance(e, dict)]
    if any(e.get("field") == "count" and e.get("value") for e in entries):
        return CompiledQuery(entity, count_only=True)

    where: List[str] = []
    order_by: Optional[Tuple[str, str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    for entry in entries:
        name = entry.get("field")
        value = entry.get("value")
        if name == "asc":
            order_by = (value, "ASC")
        elif name == "desc":
            order_by = (value, "DESC")
        elif name == "limit":
            limit = _as_int(value)
        elif name == "offset":
            offset = _as_int(value)
        elif name in ("count", "fetchAll"):
            continue
        else:
            operator = entry.get("operator") or DEFAULT_OPERATOR
            where.append(f"{name} {operator} {render_literal(value)}")

    return CompiledQuery(entity, where=where, order_by=order_by, limit=limit, offset=offset)


def compile_query(entity: str, criteria: Canonical) -> str:
    """Render canonical criteria for `entity` as one IQL statement.

    Values are typed against the entity's registered fields first, so a
    number field given "0" renders as `0`. Neither argument is modified.
    """
    return build_query(entity, coerce_criteria(entity, criteria)).render()
