from __future__ import annotations

import os
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI
from starlette.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from dotenv import load_dotenv

from qbo_mcp.entities import ENTITIES
from qbo_mcp.request_context import current_credentials, credentials_from_headers
from qbo_mcp.mcp_app import mcp

load_dotenv()

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger("qbo_mcp")


@asynccontextmanager
async def lifespan(app_: FastAPI):
    # Initialize FastMCP Streamable HTTP session manager.
    # Without this, FastMCP raises: 'Task group is not initialized. Make sure to use run().'
    async with mcp.session_manager.run():
        yield


# NOTE: Avoid auto-redirects (307) caused by missing/extra trailing slashes.
# Some clients drop the Authorization header when following redirects.
app = FastAPI(redirect_slashes=False, lifespan=lifespan)

# --- Proxy / Host handling ---------------------------------------------------
# Trust X-Forwarded-Proto/Host from the reverse proxy; strict host validation
# is opt-in via ENABLE_TRUSTED_HOST=1.
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

if os.environ.get("ENABLE_TRUSTED_HOST", "0").lower() in {"1", "true", "yes"}:
    from starlette.middleware.trustedhost import TrustedHostMiddleware
    allowed = os.environ.get("ALLOWED_HOSTS", "").strip()
    allowed_hosts = [h.strip() for h in allowed.split(",") if h.strip()] or ["localhost", "127.0.0.1"]
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)


@app.get("/")
def root():
    return {"ok": True, "service": "QBO MCP Server", "mcp": "/mcp", "entities": sorted(ENTITIES)}


@app.get("/health")
def health():
    return {"ok": True}


# ---------------------------------------------------------------------------
# MCP mount + per-request QuickBooks credentials
# ---------------------------------------------------------------------------


class MCPCredentialsWrapper:
    """ASGI wrapper that exposes the caller's QuickBooks credentials to tools.

    The access token (Authorization: Bearer / X-QuickBooks-Token) and realm id
    (X-QuickBooks-Realm-Id) are read from the request and placed in a
    ContextVar for the duration of the request. Requests without a token still
    reach the MCP app so tools/list works; tools that need QuickBooks fail with
    a clear error instead.
    """

    def __init__(self, asgi_app: Any):
        self._app = asgi_app

    @staticmethod
    def _headers(scope: Dict[str, Any]) -> Dict[str, str]:
        return {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in (scope.get("headers") or [])}

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        path = (scope.get("path") or "").rstrip("/")
        if not (path == "/mcp" or path.startswith("/mcp/") or path == "/sse" or path.startswith("/sse/")):
            await self._app(scope, receive, send)
            return

        creds = credentials_from_headers(self._headers(scope))
        if os.environ.get("REQUIRE_QUICKBOOKS_TOKEN", "0").lower() in {"1", "true", "yes"} and not creds["access_token"]:
            logger.info("MCP request rejected: path=%s reason=missing token", path)
            resp = JSONResponse(
                {"error": "unauthorized", "error_description": "Missing QuickBooks access token"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )
            await resp(scope, receive, send)
            return

        token = current_credentials.set(creds)
        try:
            await self._app(scope, receive, send)
        finally:
            current_credentials.reset(token)


# IMPORTANT: FastMCP's HTTP transport already exposes /mcp.
# Mount at root so /mcp stays /mcp (not /mcp/mcp).
app.mount("/", MCPCredentialsWrapper(mcp.streamable_http_app()))
