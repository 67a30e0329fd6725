"""MCP Nexus Gateway — FastAPI application entry point.

An MCP (JSON-RPC 2.0 over HTTP) gateway in front of Tavily and Brave
Search. Authenticates client tokens, enforces per-token tool scoping and
rate limits, and rotates requests across pools of upstream API keys.
"""

import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response

from mcp_nexus.admin.routes import router as admin_router
from mcp_nexus.errors import (
    AuthError,
    ConfigError,
    DecryptionError,
    GatewayError,
    KeyPoolExhaustedError,
    NotFoundError,
    RateLimitError,
    ScopeError,
    StorageError,
    UnknownToolError,
    UpstreamError,
    ValidationError,
)
from mcp_nexus.logging.audit import (
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from mcp_nexus.providers.catalog import TOOLS
from mcp_nexus.proxy.factory import get_dispatcher
from mcp_nexus.proxy.handler import close_client
from mcp_nexus.security.auth import Identity
from mcp_nexus.security.scope import is_tool_allowed

VERSION = "1.0.0"
SERVER_NAME = "mcp-nexus"
PROTOCOL_VERSION = "2024-11-05"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
UPSTREAM_FAILED = -32002
RATE_LIMITED = -32029


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    # A bad KEY_ENCRYPTION_SECRET raises ConfigError here and aborts startup
    dispatcher = get_dispatcher()
    get_audit_logger().info(
        "Gateway started",
        extra={"audit_data": {"key_selection_strategy": dispatcher.pool.strategy}},
    )
    yield
    await close_client()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="MCP Nexus Gateway",
    description="Authenticated, rate-limited MCP gateway for search providers",
    version=VERSION,
    lifespan=lifespan,
)
app.include_router(admin_router)


_HTTP_STATUS: list[tuple[type[GatewayError], int]] = [
    (AuthError, 401),
    (ScopeError, 403),
    (RateLimitError, 429),
    (NotFoundError, 404),
    (UnknownToolError, 404),
    (ValidationError, 400),
    (DecryptionError, 409),
    (KeyPoolExhaustedError, 503),
    (StorageError, 503),
    (ConfigError, 500),
]


def http_status_for(exc: GatewayError) -> int:
    if isinstance(exc, UpstreamError):
        return exc.status_code
    for cls, status in _HTTP_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def rpc_code_for(exc: GatewayError) -> int:
    if isinstance(exc, RateLimitError):
        return RATE_LIMITED
    if isinstance(exc, (AuthError, ScopeError, ValidationError)):
        return INVALID_REQUEST
    if isinstance(exc, UnknownToolError):
        return INVALID_PARAMS
    if isinstance(exc, UpstreamError):
        return UPSTREAM_FAILED
    return INTERNAL_ERROR


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    """Admin API errors as ``{"error": {kind, message, data?}}``."""
    return JSONResponse(status_code=http_status_for(exc), content={"error": exc.to_payload()})


def _rpc_result(msg_id, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def _rpc_error(msg_id, code: int, message: str, data: dict | None = None) -> dict:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": msg_id, "error": error}


def _rpc_error_from(msg_id, exc: GatewayError) -> dict:
    payload = exc.to_payload()
    return _rpc_error(msg_id, rpc_code_for(exc), exc.message, {"kind": payload["kind"], **(exc.data or {})})


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/mcp")
async def mcp_info():
    return {"name": SERVER_NAME, "version": VERSION, "transport": ["http"]}


@app.post("/mcp")
async def mcp_endpoint(request: Request, authorization: str | None = Header(default=None)):
    """JSON-RPC 2.0 endpoint for MCP clients.

    Pipeline for tools/call: Auth -> Tool Scope -> Rate Limit -> Key Pool -> Forward -> Log
    """
    logger = get_audit_logger()
    rid = generate_request_id()
    request_id_var.set(rid)
    client_ip = request.client.host if request.client else "unknown"
    dispatcher = get_dispatcher()

    # 1. Authentication (every method requires a valid client token)
    try:
        identity = await dispatcher.authenticate(authorization)
    except AuthError as e:
        logger.warning(
            "Authentication failed",
            extra={"audit_data": {"client_ip": client_ip, "reason": e.reason}},
        )
        return JSONResponse(
            status_code=401,
            content=_rpc_error_from(None, e),
            headers={"X-Request-Id": rid},
        )

    headers = {"X-Request-Id": rid}
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content=_rpc_error(None, PARSE_ERROR, "Parse error"),
                            headers=headers)

    if not isinstance(body, dict) or body.get("jsonrpc") != "2.0" or not isinstance(body.get("method"), str):
        return JSONResponse(
            status_code=400,
            content=_rpc_error(body.get("id") if isinstance(body, dict) else None,
                               INVALID_REQUEST, "Invalid Request"),
            headers=headers,
        )

    method = body["method"]
    msg_id = body.get("id")
    params = body.get("params") or {}

    # Notifications get no response body
    if "id" not in body:
        return Response(status_code=202, headers=headers)

    try:
        if method == "initialize":
            result = {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": SERVER_NAME, "version": VERSION},
                "capabilities": {"tools": {}},
            }
        elif method == "ping":
            result = {}
        elif method == "tools/list":
            result = {"tools": _visible_tools(identity)}
        elif method == "tools/call":
            result = await _call_tool(dispatcher, identity, params, headers)
        else:
            return JSONResponse(
                content=_rpc_error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}"),
                headers=headers,
            )
    except RateLimitError as e:
        logger.warning(
            "Rate limit exceeded",
            extra={"audit_data": {
                "client_token_id": identity.client_token_id,
                "client_ip": client_ip,
                "scope": e.scope,
                "rate_limit": e.limit,
                "retry_after_ms": e.retry_after_ms,
            }},
        )
        headers["Retry-After"] = str(max(1, -(-e.retry_after_ms // 1000)))
        headers["X-RateLimit-Limit"] = str(e.limit)
        headers["X-RateLimit-Remaining"] = "0"
        return JSONResponse(status_code=429, content=_rpc_error_from(msg_id, e), headers=headers)
    except GatewayError as e:
        return JSONResponse(content=_rpc_error_from(msg_id, e), headers=headers)

    return JSONResponse(content=_rpc_result(msg_id, result), headers=headers)


def _visible_tools(identity: Identity) -> list[dict]:
    """Catalog entries this token may call."""
    return [spec.to_mcp() for name, spec in TOOLS.items() if is_tool_allowed(identity, name)]


async def _call_tool(dispatcher, identity: Identity, params: dict, headers: dict) -> dict:
    if not isinstance(params, dict):
        raise ValidationError("tools/call params must be an object")
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if not isinstance(name, str) or not name:
        raise ValidationError("tools/call requires params.name")
    if not isinstance(arguments, dict):
        raise ValidationError("tools/call params.arguments must be an object")

    outcome = await dispatcher.dispatch_as(identity, name, arguments)

    decision = outcome.rate_limit
    headers["X-RateLimit-Limit"] = str(decision.limit)
    headers["X-RateLimit-Remaining"] = str(decision.remaining)
    headers["X-RateLimit-Reset"] = str(int(decision.reset_seconds))

    response = outcome.response
    return {
        "content": [{"type": "text", "text": json.dumps(response.body)}],
        "isError": not response.ok,
    }
