import os
import logging
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv

from qbo_mcp.errors import QuickBooksAPIError

load_dotenv()

logger = logging.getLogger("qbo_mcp.qbo")

# ---------------------------
# QBO Accounting API helpers
# ---------------------------


def _minorversion() -> str:
    # Intuit minorversion changes over time; keep configurable.
    return os.environ.get("QBO_MINORVERSION", "75")


def _timeout() -> float:
    return float(os.environ.get("QBO_HTTP_TIMEOUT", "30"))


def _qbo_env_is_sandbox() -> bool:
    env = (os.environ.get("QUICKBOOKS_ENVIRONMENT") or os.environ.get("QBO_ENV") or "sandbox").lower()
    return env in ("sandbox", "development", "dev", "test")


def _qbo_api_base_url(*, sandbox: Optional[bool] = None) -> str:
    """Return the QBO API base URL.

    Intuit uses a different hostname for sandbox vs production.
    """
    use_sandbox = _qbo_env_is_sandbox() if sandbox is None else sandbox
    return "https://sandbox-quickbooks.api.intuit.com" if use_sandbox else "https://quickbooks.api.intuit.com"


def _bearer(access_token: str) -> str:
    token = access_token.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return f"Bearer {token}"


async def qbo_request(
    method: str,
    *,
    realm_id: str,
    access_token: str,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    """Low-level QBO request helper.

    Args:
        method: HTTP method
        realm_id: QBO company realm ID
        access_token: Intuit access token, with or without the "Bearer " prefix
        path: Path under /v3/company/{realm_id}, e.g. '/invoice'
        params: Query string parameters
        json_body: JSON request body (for POST)
        sandbox: Force sandbox/prod hostname override.

    Raises:
        QuickBooksAPIError: the API answered with HTTP >= 400.
    """
    base = _qbo_api_base_url(sandbox=sandbox)
    if not path.startswith("/"):
        path = "/" + path

    url = f"{base}/v3/company/{realm_id}{path}"

    qparams: Dict[str, Any] = dict(params or {})
    qparams.setdefault("minorversion", _minorversion())

    headers: Dict[str, str] = {
        "Authorization": _bearer(access_token),
        "Accept": "application/json",
    }
    if method.upper() in ("POST", "PUT", "PATCH"):
        headers["Content-Type"] = "application/json"

    async with httpx.AsyncClient(timeout=_timeout()) as client:
        resp = await client.request(method.upper(), url, headers=headers, params=qparams, json=json_body)

    if resp.status_code >= 400:
        try:
            err = resp.json()
        except ValueError:
            err = resp.text
        logger.warning("QBO API error %s for %s %s", resp.status_code, method.upper(), path)
        raise QuickBooksAPIError(
            f"QBO API error {resp.status_code} for {method.upper()} {url}: {err}",
            request=resp.request,
            response=resp,
            payload=err,
        )

    if resp.status_code == 204:
        return {"ok": True, "status_code": 204}

    ctype = (resp.headers.get("content-type") or "").lower()
    if "application/json" in ctype:
        return resp.json()

    return {"ok": True, "status_code": resp.status_code, "content_type": ctype, "text": resp.text}


async def qbo_query(realm_id: str, access_token: str, sql: str, *, sandbox: Optional[bool] = None) -> dict:
    """Run an Intuit Query Language (IQL) SQL-like query."""
    logger.debug("IQL realm=%s: %s", realm_id, sql)
    return await qbo_request(
        "GET",
        realm_id=realm_id,
        access_token=access_token,
        path="/query",
        params={"query": sql},
        sandbox=sandbox,
    )


async def qbo_create_entity(
    realm_id: str,
    access_token: str,
    endpoint: str,
    payload: Dict[str, Any],
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    return await qbo_request(
        "POST",
        realm_id=realm_id,
        access_token=access_token,
        path=endpoint,
        json_body=payload,
        sandbox=sandbox,
    )


async def qbo_get_entity(
    realm_id: str,
    access_token: str,
    endpoint: str,
    entity_id: str,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    return await qbo_request(
        "GET",
        realm_id=realm_id,
        access_token=access_token,
        path=f"{endpoint}/{entity_id}",
        sandbox=sandbox,
    )


async def qbo_update_entity(
    realm_id: str,
    access_token: str,
    endpoint: str,
    payload: Dict[str, Any],
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    return await qbo_request(
        "POST",
        realm_id=realm_id,
        access_token=access_token,
        path=endpoint,
        json_body=payload,
        sandbox=sandbox,
    )


async def qbo_delete_entity(
    realm_id: str,
    access_token: str,
    endpoint: str,
    entity_id: str,
    sync_token: str,
    *,
    sandbox: Optional[bool] = None,
) -> Dict[str, Any]:
    """POST /{entity}?operation=delete"""
    return await qbo_request(
        "POST",
        realm_id=realm_id,
        access_token=access_token,
        path=endpoint,
        params={"operation": "delete"},
        json_body={"Id": entity_id, "SyncToken": sync_token},
        sandbox=sandbox,
    )
