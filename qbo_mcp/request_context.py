import os
from contextvars import ContextVar
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

# Per-request QuickBooks credentials extracted from the MCP HTTP request headers.
current_credentials: ContextVar[Optional[Dict[str, Any]]] = ContextVar("current_credentials", default=None)


def credentials_from_headers(headers: Mapping[str, str]) -> Dict[str, Optional[str]]:
    """Pull the access token and realm id out of lower-cased request headers."""
    token = None
    auth = headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip() or None
    if not token:
        token = (headers.get("x-quickbooks-token") or "").strip() or None
    realm_id = (headers.get("x-quickbooks-realm-id") or "").strip() or None
    return {"access_token": token, "realm_id": realm_id}


def get_quickbooks_credentials(realm_id: Optional[str] = None) -> Tuple[str, str]:
    """Return (access_token, realm_id) for the current tool call.

    The realm falls back from the tool argument to the request header to
    QUICKBOOKS_REALM_ID.
    """
    creds = current_credentials.get() or {}
    token = creds.get("access_token")
    if not token:
        raise PermissionError(
            "Missing Authorization header. Please provide: Authorization: Bearer <access_token> "
            "(or X-QuickBooks-Token)."
        )
    rid = realm_id or creds.get("realm_id") or os.environ.get("QUICKBOOKS_REALM_ID")
    if not rid:
        raise ValueError(
            "No QuickBooks company selected. Pass realm_id, send X-QuickBooks-Realm-Id, "
            "or set QUICKBOOKS_REALM_ID."
        )
    return token, rid
