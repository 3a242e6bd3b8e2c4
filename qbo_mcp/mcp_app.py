from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, List, Optional, Union

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from qbo_mcp.entities import ENTITIES, EntitySpec
from qbo_mcp.errors import format_error
from qbo_mcp.service import (
    query_company,
    search_entity,
    create_entity,
    get_entity_by_id,
    update_entity,
    delete_entity,
)
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("qbo_mcp.tools")

# NOTE: ChatGPT Apps / Custom Connectors require *stateless* HTTP mode for the
# HTTP/SSE transport expected by the client.
mcp = FastMCP("QBO MCP Server", stateless_http=True, host="0.0.0.0")

READ_ONLY = ToolAnnotations(readOnlyHint=True)
DESTRUCTIVE = ToolAnnotations(destructiveHint=True)

Criteria = Optional[Union[Dict[str, Any], List[Dict[str, Any]]]]

# Entities that QuickBooks lets you delete (others can only be made inactive).
DELETABLE = ("Bill", "BillPayment", "Customer", "Estimate", "JournalEntry", "Purchase", "Vendor")


# Intuit API reference
DOCS_BASE = "https://developer.intuit.com/app/developer/qbo/docs/api/accounting/all-entities"
QUERY_DOCS = "https://developer.intuit.com/app/developer/qbo/docs/develop/explore-the-quickbooks-online-api/data-queries"


def _doc_url(spec: EntitySpec) -> str:
    return f"{DOCS_BASE}/{spec.name.lower()}"


CRITERIA_HELP = """

Criteria accepts three formats:
1. Empty object or pagination only: {} or {"limit": 20, "desc": "MetaData.CreateTime"}
2. Array of filters, operators optional (default "="):
   [{"field": "Balance", "value": 0, "operator": ">"}, {"field": "limit", "value": 10}]
3. Advanced options: {"filters": [{"field": "Balance", "value": 0, "operator": ">"}], "limit": 10, "desc": "TxnDate"}
A flat object without reserved keys, e.g. {"DisplayName": "Acme"}, is an equality search.
Operators: =, <, >, <=, >=, LIKE (use % wildcards), IN (value is a list).
Reserved keywords (never filter field names): limit, offset, asc, desc, count, fetchAll, filters.
Do not mix reserved keywords with field names in one flat object; use format 2 or 3 instead.
count returns only the number of matches; fetchAll pages through every match."""


def _search_description(spec: EntitySpec) -> str:
    return (
        f"Search {spec.plural} in QuickBooks Online that match given criteria."
        f"{CRITERIA_HELP}\n"
        f"Filterable fields: {', '.join(spec.filterable_fields)}.\n"
        f"Sortable fields: {', '.join(spec.sortable_fields)}."
        f" [See the documentation]({_doc_url(spec)})"
    )


async def _guarded(context: str, call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Await a service call, turning expected failures into MCP tool errors."""
    try:
        return await call
    except (ValueError, PermissionError, httpx.HTTPError) as e:
        logger.info("tool failed: %s: %s", context, e)
        raise ToolError(format_error(e, context)) from e


# ----------------------
# Raw query
# ----------------------


@mcp.tool(
    name="quickbooks-search-query",
    description=(
        "Runs a raw QuickBooks query (SQL-like), e.g. SELECT * FROM Customer WHERE Active = true MAXRESULTS 10."
        f" [See the documentation]({QUERY_DOCS})"
    ),
    annotations=READ_ONLY,
)
async def quickbooks_search_query(sql: str, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("run query", query_company(sql, realm_id))


# ----------------------
# Search tools
# ----------------------


@mcp.tool(name="quickbooks-search-accounts", description=_search_description(ENTITIES["Account"]), annotations=READ_ONLY)
async def quickbooks_search_accounts(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search accounts", search_entity("Account", criteria, realm_id))


@mcp.tool(name="quickbooks-search-bills", description=_search_description(ENTITIES["Bill"]), annotations=READ_ONLY)
async def quickbooks_search_bills(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search bills", search_entity("Bill", criteria, realm_id))


@mcp.tool(
    name="quickbooks-search-bill-payments",
    description=_search_description(ENTITIES["BillPayment"]),
    annotations=READ_ONLY,
)
async def quickbooks_search_bill_payments(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search bill payments", search_entity("BillPayment", criteria, realm_id))


@mcp.tool(name="quickbooks-search-customers", description=_search_description(ENTITIES["Customer"]), annotations=READ_ONLY)
async def quickbooks_search_customers(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search customers", search_entity("Customer", criteria, realm_id))


@mcp.tool(name="quickbooks-search-employees", description=_search_description(ENTITIES["Employee"]), annotations=READ_ONLY)
async def quickbooks_search_employees(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search employees", search_entity("Employee", criteria, realm_id))


@mcp.tool(name="quickbooks-search-estimates", description=_search_description(ENTITIES["Estimate"]), annotations=READ_ONLY)
async def quickbooks_search_estimates(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search estimates", search_entity("Estimate", criteria, realm_id))


@mcp.tool(name="quickbooks-search-invoices", description=_search_description(ENTITIES["Invoice"]), annotations=READ_ONLY)
async def quickbooks_search_invoices(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search invoices", search_entity("Invoice", criteria, realm_id))


@mcp.tool(name="quickbooks-search-items", description=_search_description(ENTITIES["Item"]), annotations=READ_ONLY)
async def quickbooks_search_items(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search items", search_entity("Item", criteria, realm_id))


@mcp.tool(
    name="quickbooks-search-journal-entries",
    description=_search_description(ENTITIES["JournalEntry"]),
    annotations=READ_ONLY,
)
async def quickbooks_search_journal_entries(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search journal entries", search_entity("JournalEntry", criteria, realm_id))


@mcp.tool(name="quickbooks-search-purchases", description=_search_description(ENTITIES["Purchase"]), annotations=READ_ONLY)
async def quickbooks_search_purchases(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search purchases", search_entity("Purchase", criteria, realm_id))


@mcp.tool(name="quickbooks-search-vendors", description=_search_description(ENTITIES["Vendor"]), annotations=READ_ONLY)
async def quickbooks_search_vendors(criteria: Criteria = None, realm_id: Optional[str] = None) -> Dict[str, Any]:
    return await _guarded("search vendors", search_entity("Vendor", criteria, realm_id))


# ----------------------
# Create / Get / Update / Delete
# ----------------------
#
# Pure request forwarding, identical for every entity, so these are
# registered from the entity table rather than written out one by one.


def _slug(spec: EntitySpec) -> str:
    return spec.singular.replace(" ", "-")


def _register_crud_tools(spec: EntitySpec) -> None:
    slug = _slug(spec)
    label = spec.singular

    async def create(payload: Dict[str, Any], realm_id: Optional[str] = None) -> Dict[str, Any]:
        return await _guarded(f"create {label}", create_entity(spec.name, payload, realm_id))

    async def get(entity_id: str, realm_id: Optional[str] = None) -> Dict[str, Any]:
        return await _guarded(f"get {label}", get_entity_by_id(spec.name, entity_id, realm_id))

    async def update(payload: Dict[str, Any], realm_id: Optional[str] = None) -> Dict[str, Any]:
        return await _guarded(f"update {label}", update_entity(spec.name, payload, realm_id))

    mcp.add_tool(
        create,
        name=f"quickbooks-create-{slug}",
        description=f"Creates a {label} in QuickBooks Online. [See the documentation]({_doc_url(spec)})",
    )
    mcp.add_tool(
        get,
        name=f"quickbooks-get-{slug}",
        description=f"Returns info about a {label} by its Id. [See the documentation]({_doc_url(spec)})",
        annotations=READ_ONLY,
    )
    mcp.add_tool(
        update,
        name=f"quickbooks-update-{slug}",
        description=(
            f"Updates a {label}. The payload must be the full object including Id and SyncToken. "
            f"[See the documentation]({_doc_url(spec)})"
        ),
    )

    if spec.name in DELETABLE:

        async def delete(entity_id: str, sync_token: str, realm_id: Optional[str] = None) -> Dict[str, Any]:
            return await _guarded(f"delete {label}", delete_entity(spec.name, entity_id, sync_token, realm_id))

        mcp.add_tool(
            delete,
            name=f"quickbooks-delete-{slug}",
            description=f"Deletes a {label} (requires Id and SyncToken). [See the documentation]({_doc_url(spec)})",
            annotations=DESTRUCTIVE,
        )


for _spec in ENTITIES.values():
    _register_crud_tools(_spec)
