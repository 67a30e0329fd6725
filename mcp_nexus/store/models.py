"""Durable records owned by the persistence layer."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """ISO 8601 UTC with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    value = as_utc(value)
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


@dataclass
class ClientToken:
    id: str
    token_prefix: str
    token_hash: str  # sha256 hex of the secret part
    token_encrypted: bytes | None = None  # AES-GCM blob of the full token, admin reveal only
    description: str | None = None
    allowed_tools: list[str] | None = None  # None = all tools allowed
    rate_limit: int | None = None  # None = global default per client
    expires_at: datetime | None = None
    revoked_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= (now or utcnow())

    def to_public_dict(self) -> dict:
        """Admin listing shape. Never includes hash or ciphertext."""
        return {
            "id": self.id,
            "tokenPrefix": self.token_prefix,
            "description": self.description,
            "allowedTools": list(self.allowed_tools) if self.allowed_tools is not None else None,
            "rateLimit": self.rate_limit,
            "revokedAt": format_timestamp(self.revoked_at),
            "expiresAt": format_timestamp(self.expires_at),
            "createdAt": format_timestamp(self.created_at),
        }


@dataclass
class ProviderCredential:
    id: str
    provider_id: str  # "tavily" | "brave"
    label: str
    masked_key: str
    encrypted_key: bytes
    status: str = "active"  # "active" | "disabled"
    last_used_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "maskedKey": self.masked_key,
            "status": self.status,
            "lastUsedAt": format_timestamp(self.last_used_at),
            "createdAt": format_timestamp(self.created_at),
        }
