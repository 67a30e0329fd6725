"""Admin API routes — client tokens and upstream key pools.

Plaintext values leave this API in exactly two places: the response to
token creation, and an explicit reveal. Nothing is cached.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mcp_nexus.config.settings import get_settings
from mcp_nexus.errors import ValidationError
from mcp_nexus.logging.audit import get_audit_logger
from mcp_nexus.providers.catalog import PROVIDERS
from mcp_nexus.proxy.factory import get_dispatcher
from mcp_nexus.security.admin import verify_admin_token

router = APIRouter(
    prefix="/admin/api",
    tags=["admin"],
    dependencies=[Depends(verify_admin_token)],
)


class TokenCreate(BaseModel):
    description: str | None = None
    allowedTools: list[str] | None = None  # None = all tools
    rateLimit: int | None = Field(default=None, gt=0)  # None = global default
    expiresAt: datetime | None = None


class CredentialCreate(BaseModel):
    label: str = ""
    apiKey: str


class CredentialStatusUpdate(BaseModel):
    status: Literal["active", "disabled"]


def _check_provider(provider_id: str) -> None:
    if provider_id not in PROVIDERS:
        raise ValidationError(f"Unknown provider: {provider_id}")


@router.get("/server-info")
async def server_info():
    settings = get_settings()
    dispatcher = get_dispatcher()
    info = {
        "clientTokenCount": len(await dispatcher.authority.list_tokens()),
        "keySelectionStrategy": dispatcher.pool.strategy,
        "globalRateLimitPerMinute": settings.global_rate_limit_per_minute,
        "defaultClientRateLimitPerMinute": settings.default_client_rate_limit_per_minute,
    }
    for provider_id in PROVIDERS:
        creds = await dispatcher.pool.list_credentials(provider_id)
        info[f"{provider_id}KeyCount"] = sum(1 for c in creds if c.is_active)
    return info


# --- client tokens ---

@router.get("/tokens")
async def list_tokens():
    tokens = await get_dispatcher().authority.list_tokens()
    return {"tokens": [t.to_public_dict() for t in tokens]}


@router.post("/tokens", status_code=201)
async def create_token(request: TokenCreate):
    """Issue a client token. The plaintext is returned only in this response."""
    issued = await get_dispatcher().authority.issue(
        description=request.description,
        allowed_tools=request.allowedTools,
        rate_limit=request.rateLimit,
        expires_at=request.expiresAt,
    )
    get_audit_logger().info(
        "Client token issued",
        extra={"audit_data": {"client_token_id": issued.record.id,
                              "token_prefix": issued.record.token_prefix}},
    )
    return {"token": issued.token, **issued.record.to_public_dict()}


@router.post("/tokens/{token_id}/revoke")
async def revoke_token(token_id: str):
    record = await get_dispatcher().authority.revoke(token_id)
    get_audit_logger().info(
        "Client token revoked",
        extra={"audit_data": {"client_token_id": record.id, "token_prefix": record.token_prefix}},
    )
    return record.to_public_dict()


@router.post("/tokens/{token_id}/reveal")
async def reveal_token(token_id: str):
    token = await get_dispatcher().authority.reveal(token_id)
    get_audit_logger().warning(
        "Client token revealed",
        extra={"audit_data": {"client_token_id": token_id}},
    )
    return {"id": token_id, "token": token}


# --- upstream keys ---

@router.get("/keys/{provider_id}")
async def list_keys(provider_id: str):
    _check_provider(provider_id)
    creds = await get_dispatcher().pool.list_credentials(provider_id)
    return {"keys": [c.to_public_dict() for c in creds]}


@router.post("/keys/{provider_id}", status_code=201)
async def add_key(provider_id: str, request: CredentialCreate):
    record = await get_dispatcher().pool.add_credential(provider_id, request.label, request.apiKey)
    return record.to_public_dict()


@router.put("/keys/{provider_id}/{credential_id}/status")
async def update_key_status(provider_id: str, credential_id: str, request: CredentialStatusUpdate):
    _check_provider(provider_id)
    record = await get_dispatcher().pool.set_status(credential_id, request.status, provider_id=provider_id)
    return record.to_public_dict()
