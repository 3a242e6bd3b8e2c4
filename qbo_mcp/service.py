from __future__ import annotations

import os
import logging
from typing import Any, Dict, List, Optional

from qbo_mcp.criteria import Canonical, Filter, as_filter_array, normalize
from qbo_mcp.entities import MAX_PAGE_SIZE, EntitySpec, coerce_criteria, get_entity, validate_criteria
from qbo_mcp.iql import build_query, compile_query
from qbo_mcp.request_context import get_quickbooks_credentials
from qbo_mcp.qbo import (
    qbo_query,
    qbo_create_entity,
    qbo_get_entity,
    qbo_update_entity,
    qbo_delete_entity,
)

logger = logging.getLogger("qbo_mcp.service")


def _max_pages() -> int:
    return int(os.environ.get("QBO_FETCH_ALL_MAX_PAGES", "100"))


# ----------------------
# Query helpers
# ----------------------


async def query_company(sql: str, realm_id: Optional[str] = None, *, sandbox: Optional[bool] = None) -> Dict[str, Any]:
    token, rid = get_quickbooks_credentials(realm_id)
    data = await qbo_query(rid, token, sql, sandbox=sandbox)
    return {"realm_id": rid, "data": data}


def prepare_search(entity: str, criteria: Any) -> Canonical:
    """normalize -> coerce -> validate. Raises CriteriaValidationError."""
    canonical = coerce_criteria(entity, normalize(criteria))
    validate_criteria(entity, canonical)
    return canonical


def _rows(data: Dict[str, Any], spec: EntitySpec) -> List[Dict[str, Any]]:
    return (data.get("QueryResponse") or {}).get(spec.name) or []


def _directive(entries: List[Filter], name: str) -> Any:
    value = None
    for e in entries:
        if isinstance(e, dict) and e.get("field") == name:
            value = e.get("value")
    return value


async def _fetch_all(
    spec: EntitySpec,
    entries: List[Filter],
    token: str,
    realm_id: str,
    *,
    sandbox: Optional[bool],
) -> Dict[str, Any]:
    """Page through every matching row, MAXRESULTS at a time."""
    page_size = _directive(entries, "limit") or MAX_PAGE_SIZE
    offset = _directive(entries, "offset") or 0
    base = [e for e in entries if e.get("field") not in ("limit", "offset", "fetchAll")]

    rows: List[Dict[str, Any]] = []
    queries: List[str] = []
    for _ in range(_max_pages()):
        page = base + [{"field": "limit", "value": page_size}, {"field": "offset", "value": offset}]
        sql = compile_query(spec.name, page)
        queries.append(sql)
        data = await qbo_query(realm_id, token, sql, sandbox=sandbox)
        batch = _rows(data, spec)
        rows.extend(batch)
        if len(batch) < page_size:
            break
        offset += page_size
    else:
        logger.warning("fetchAll for %s stopped after %d pages", spec.name, _max_pages())

    return {"rows": rows, "queries": queries}


async def search_entity(
    entity: str,
    criteria: Any = None,
    realm_id: Optional[str] = None,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    """Run a criteria search for one entity and reshape the QueryResponse."""
    spec = get_entity(entity)
    canonical = prepare_search(spec.name, criteria)
    token, rid = get_quickbooks_credentials(realm_id)

    query = build_query(spec.name, canonical)
    sql = query.render()
    logger.debug("search %s: %s", spec.name, sql)

    if query.count_only:
        data = await qbo_query(rid, token, sql, sandbox=sandbox)
        total = (data.get("QueryResponse") or {}).get("totalCount", 0)
        return {"realm_id": rid, "entity": spec.name, "query": sql, "count": total}

    entries = as_filter_array(canonical)
    if _directive(entries, "fetchAll"):
        result = await _fetch_all(spec, entries, token, rid, sandbox=sandbox)
        rows = result["rows"]
        return {
            "realm_id": rid,
            "entity": spec.name,
            "query": result["queries"][0],
            "pages": len(result["queries"]),
            "count": len(rows),
            spec.result_key: rows,
        }

    data = await qbo_query(rid, token, sql, sandbox=sandbox)
    rows = _rows(data, spec)
    return {"realm_id": rid, "entity": spec.name, "query": sql, "count": len(rows), spec.result_key: rows}


# ----------------------
# CRUD helpers
# ----------------------


async def create_entity(
    entity: str,
    payload: Dict[str, Any],
    realm_id: Optional[str] = None,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    spec = get_entity(entity)
    token, rid = get_quickbooks_credentials(realm_id)
    data = await qbo_create_entity(rid, token, spec.endpoint, payload, sandbox=sandbox)
    return {"realm_id": rid, "entity": spec.name, "data": data.get(spec.name, data)}


async def get_entity_by_id(
    entity: str,
    entity_id: str,
    realm_id: Optional[str] = None,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    spec = get_entity(entity)
    if not entity_id:
        raise ValueError(f"A {spec.singular} id is required.")
    token, rid = get_quickbooks_credentials(realm_id)
    data = await qbo_get_entity(rid, token, spec.endpoint, entity_id, sandbox=sandbox)
    return {"realm_id": rid, "entity": spec.name, "id": entity_id, "data": data.get(spec.name, data)}


async def update_entity(
    entity: str,
    payload: Dict[str, Any],
    realm_id: Optional[str] = None,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    spec = get_entity(entity)
    missing = [k for k in ("Id", "SyncToken") if not payload.get(k)]
    if missing:
        raise ValueError(f"Updating a {spec.singular} requires {' and '.join(missing)} in the payload.")
    token, rid = get_quickbooks_credentials(realm_id)
    data = await qbo_update_entity(rid, token, spec.endpoint, payload, sandbox=sandbox)
    return {"realm_id": rid, "entity": spec.name, "data": data.get(spec.name, data)}


async def delete_entity(
    entity: str,
    entity_id: str,
    sync_token: str,
    realm_id: Optional[str] = None,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    spec = get_entity(entity)
    if not entity_id or sync_token in (None, ""):
        raise ValueError(f"Deleting a {spec.singular} requires its id and sync_token.")
    token, rid = get_quickbooks_credentials(realm_id)
    data = await qbo_delete_entity(rid, token, spec.endpoint, entity_id, sync_token, sandbox=sandbox)
    return {"realm_id": rid, "entity": spec.name, "id": entity_id, "data": data.get(spec.name, data)}
