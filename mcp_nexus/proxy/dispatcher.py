"""Per-request orchestration for MCP tool calls.

Pipeline: Authenticate -> Tool Scope -> Arguments -> Rate Limit -> Credential -> Forward

A request that is rejected at any stage never reaches credential selection
or the upstream call. Exactly one forward attempt is made per accepted
request; retrying a failed upstream call is left to the caller. No lock is
held while the forward is in flight.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from mcp_nexus.errors import GatewayError, UnknownToolError
from mcp_nexus.logging.audit import RequestTimer, get_audit_logger
from mcp_nexus.providers.base import ProviderResponse
from mcp_nexus.providers.catalog import get_tool
from mcp_nexus.providers.pool import CredentialPool, SelectedCredential
from mcp_nexus.proxy.handler import forward_to_provider
from mcp_nexus.security.auth import Identity, TokenAuthority
from mcp_nexus.security.ratelimit import RateLimitDecision, RateLimiter
from mcp_nexus.security.scope import authorize_tool


class DispatchState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    SCOPE_CHECKED = "scope_checked"
    RATE_LIMIT_CHECKED = "rate_limit_checked"
    CREDENTIAL_SELECTED = "credential_selected"
    FORWARDED = "forwarded"
    REJECTED = "rejected"


@dataclass
class DispatchResult:
    identity: Identity
    tool_name: str
    provider_id: str
    credential_id: str
    response: ProviderResponse
    rate_limit: RateLimitDecision
    latency_ms: float
    state: DispatchState = DispatchState.FORWARDED


class GatewayDispatcher:
    """Holds no mutable state of its own; safe to share across requests."""

    def __init__(self, authority: TokenAuthority, limiter: RateLimiter, pool: CredentialPool):
        self.authority = authority
        self.limiter = limiter
        self.pool = pool

    # --- transport-boundary operations ---

    async def authenticate(self, bearer_header_value: str | None) -> Identity:
        return await self.authority.verify(bearer_header_value)

    def authorize_tool(self, identity: Identity, tool_name: str) -> None:
        authorize_tool(identity, tool_name)

    async def check_rate_limit(self, identity: Identity) -> RateLimitDecision:
        return await self.limiter.check_request(identity)

    async def pick_credential(self, provider_id: str) -> SelectedCredential:
        return await self.pool.select(provider_id)

    # --- full pipeline ---

    async def dispatch(self, bearer_header_value: str | None, tool_name: str, arguments: dict) -> DispatchResult:
        identity = await self.authenticate(bearer_header_value)
        return await self.dispatch_as(identity, tool_name, arguments)

    async def dispatch_as(self, identity: Identity, tool_name: str, arguments: dict) -> DispatchResult:
        """Run the pipeline for an already-authenticated identity."""
        logger = get_audit_logger()
        state = DispatchState.AUTHENTICATED
        try:
            self.authorize_tool(identity, tool_name)
            tool = get_tool(tool_name)
            if tool is None:
                raise UnknownToolError(tool_name)
            tool.validate_arguments(arguments)
            state = DispatchState.SCOPE_CHECKED

            decision = await self.check_rate_limit(identity)
            state = DispatchState.RATE_LIMIT_CHECKED

            selected = await self.pick_credential(tool.provider_id)
            state = DispatchState.CREDENTIAL_SELECTED

            with RequestTimer() as timer:
                response = await forward_to_provider(tool, arguments, selected)
            state = DispatchState.FORWARDED
        except GatewayError as e:
            logger.warning(
                "Request rejected",
                extra={"audit_data": {
                    "client_token_id": identity.client_token_id,
                    "token_prefix": identity.token_prefix,
                    "tool": tool_name,
                    "rejected_at": state.value,
                    "error_kind": e.kind,
                }},
            )
            raise
        except asyncio.CancelledError:
            logger.info(
                "Request cancelled",
                extra={"audit_data": {
                    "client_token_id": identity.client_token_id,
                    "tool": tool_name,
                    "cancelled_at": state.value,
                }},
            )
            raise

        logger.info(
            "Tool call proxied",
            extra={"audit_data": {
                "client_token_id": identity.client_token_id,
                "token_prefix": identity.token_prefix,
                "tool": tool_name,
                "provider": tool.provider_id,
                "credential_id": selected.credential.id,
                "upstream_status": response.status_code,
                "latency_ms": timer.elapsed_ms,
                "rate_limit_remaining": decision.remaining,
            }},
        )
        return DispatchResult(
            identity=identity,
            tool_name=tool_name,
            provider_id=tool.provider_id,
            credential_id=selected.credential.id,
            response=response,
            rate_limit=decision,
            latency_ms=timer.elapsed_ms,
            state=state,
        )
