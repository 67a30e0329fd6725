"""Structured error taxonomy for the gateway core.

Every error carries a machine-readable ``kind``, a human-readable
``message`` and optional ``data``. The transport layer maps these to
JSON-RPC / HTTP responses; nothing in the core retries on any of them.
"""

from typing import Any


class GatewayError(Exception):
    """Base class for all errors surfaced to the transport boundary."""

    kind: str = "gateway_error"

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class AuthError(GatewayError):
    """Bearer token could not be authenticated. Always terminal."""

    MESSAGES = {
        "missing": "Authorization header required",
        "malformed": "Malformed client token",
        "unknown": "Unknown client token",
        "invalid": "Invalid client token",
        "revoked": "Client token has been revoked",
        "expired": "Client token has expired",
    }

    def __init__(self, reason: str):
        self.reason = reason
        self.kind = f"auth_{reason}"
        super().__init__(self.MESSAGES.get(reason, "Authentication failed"))


class ScopeError(GatewayError):
    kind = "scope_denied"

    def __init__(self, requested_tool: str, allowed_tools: list[str]):
        self.requested_tool = requested_tool
        self.allowed_tools = list(allowed_tools)
        message = (
            f"Tool '{requested_tool}' is not allowed for this token. "
            f"Allowed tools: {', '.join(self.allowed_tools)}"
        )
        super().__init__(
            message,
            data={"requestedTool": requested_tool, "allowedTools": self.allowed_tools},
        )


class RateLimitError(GatewayError):
    """Client or global request budget exhausted for the current window."""

    kind = "rate_limited"

    def __init__(self, scope: str, retry_after_ms: int, limit: int):
        self.scope = scope
        self.retry_after_ms = retry_after_ms
        self.limit = limit
        super().__init__(
            "Rate limit exceeded",
            data={"scope": scope, "retryAfterMs": retry_after_ms},
        )


class KeyPoolExhaustedError(GatewayError):
    kind = "key_pool_exhausted"

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(
            f"No active API keys configured for provider '{provider_id}'",
            data={"providerId": provider_id},
        )


class ConfigError(GatewayError):
    """Invalid configuration. Fatal at startup, never raised per request."""

    kind = "config_error"


class DecryptionError(GatewayError):
    """Ciphertext is missing, truncated, tampered with, or under another key."""

    kind = "decryption_failed"


class NotFoundError(GatewayError):
    kind = "not_found"


class ValidationError(GatewayError):
    kind = "invalid_request"


class StorageError(GatewayError):
    kind = "storage_error"


class UnknownToolError(GatewayError):
    kind = "unknown_tool"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}", data={"requestedTool": tool_name})


class UpstreamError(GatewayError):
    """The single forward attempt to the upstream provider failed."""

    kind = "upstream_error"

    def __init__(self, message: str, status_code: int = 502):
        self.status_code = status_code
        super().__init__(message, data={"statusCode": status_code})
