"""Client token authority.

Client tokens look like ``mcp_<12 hex>.<48 hex>``. The prefix is public and
used as the lookup key; only a SHA-256 hash of the secret part is used for
verification. An AES-GCM copy of the full token is kept solely so an
administrator can reveal it later.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime

from mcp_nexus.crypto import codec
from mcp_nexus.errors import AuthError, NotFoundError, DecryptionError, ValidationError
from mcp_nexus.store.base import GatewayStore
from mcp_nexus.store.models import ClientToken, as_utc, utcnow

TOKEN_PREFIX_TAG = "mcp_"
PREFIX_BYTES = 6  # 12 hex chars
SECRET_BYTES = 24  # 48 hex chars

_TOKEN_RE = re.compile(r"^(mcp_[0-9a-f]{12})\.([0-9a-f]{48})$")


@dataclass(frozen=True)
class Identity:
    """Resolved caller identity for a single request."""

    client_token_id: str
    token_prefix: str
    allowed_tools: tuple[str, ...] | None = None  # None = unrestricted
    rate_limit: int | None = None  # None = use global default


@dataclass
class IssuedToken:
    token: str  # plaintext, returned exactly once
    record: ClientToken


def parse_bearer(value: str | None) -> str:
    """Strip an optional ``Bearer`` scheme from an Authorization value."""
    if value is None or not value.strip():
        raise AuthError("missing")
    value = value.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        value = rest.strip()
    return value


class TokenAuthority:
    """Verifies, issues, reveals and revokes client tokens."""

    def __init__(self, store: GatewayStore, encryption_key: bytes):
        self._store = store
        self._key = encryption_key

    async def verify(self, bearer_value: str | None) -> Identity:
        """Resolve a bearer value to an Identity.

        Raises:
            AuthError: reason is one of missing, malformed, unknown,
                invalid, revoked, expired.
        """
        token = parse_bearer(bearer_value)
        match = _TOKEN_RE.match(token)
        if match is None:
            raise AuthError("malformed")
        prefix, secret = match.group(1), match.group(2)

        record = await self._store.get_client_token_by_prefix(prefix)
        if record is None:
            raise AuthError("unknown")

        if not codec.constant_time_equal(codec.sha256_hex(secret), record.token_hash):
            raise AuthError("invalid")
        if record.is_revoked:
            raise AuthError("revoked")
        if record.is_expired():
            raise AuthError("expired")

        return Identity(
            client_token_id=record.id,
            token_prefix=record.token_prefix,
            allowed_tools=tuple(record.allowed_tools) if record.allowed_tools is not None else None,
            rate_limit=record.rate_limit,
        )

    async def issue(
        self,
        description: str | None = None,
        allowed_tools: list[str] | None = None,
        rate_limit: int | None = None,
        expires_at: datetime | None = None,
    ) -> IssuedToken:
        if rate_limit is not None:
            if isinstance(rate_limit, bool) or not isinstance(rate_limit, int) or rate_limit <= 0:
                raise ValidationError("rateLimit must be a positive integer")
        if allowed_tools is not None:
            if any(not isinstance(t, str) or not t.strip() for t in allowed_tools):
                raise ValidationError("allowedTools must be a list of non-empty tool names")
            # ordered, de-duplicated
            allowed_tools = list(dict.fromkeys(allowed_tools))
        expires_at = as_utc(expires_at)

        prefix = TOKEN_PREFIX_TAG + codec.generate_token(PREFIX_BYTES)
        secret = codec.generate_token(SECRET_BYTES)
        token = f"{prefix}.{secret}"

        record = ClientToken(
            id=f"tok_{uuid.uuid4().hex}",
            token_prefix=prefix,
            token_hash=codec.sha256_hex(secret),
            token_encrypted=codec.encrypt(token, self._key),
            description=description,
            allowed_tools=allowed_tools,
            rate_limit=rate_limit,
            expires_at=expires_at,
        )
        await self._store.persist_client_token(record)
        return IssuedToken(token=token, record=record)

    async def reveal(self, client_token_id: str) -> str:
        """Decrypt a previously issued token for an administrator.

        Raises:
            NotFoundError: no such token.
            DecryptionError: no ciphertext stored, or it no longer decrypts
                (e.g. KEY_ENCRYPTION_SECRET rotated since issuance).
        """
        record = await self._get(client_token_id)
        if record.token_encrypted is None:
            raise DecryptionError("Token was issued without an encrypted copy and cannot be revealed")
        return codec.decrypt(record.token_encrypted, self._key)

    async def revoke(self, client_token_id: str) -> ClientToken:
        record = await self._get(client_token_id)
        if record.revoked_at is None:
            record.revoked_at = utcnow()
            await self._store.persist_client_token(record)
        return record

    async def list_tokens(self) -> list[ClientToken]:
        return await self._store.list_client_tokens()

    async def _get(self, client_token_id: str) -> ClientToken:
        record = await self._store.get_client_token(client_token_id)
        if record is None:
            raise NotFoundError(f"Client token not found: {client_token_id}")
        return record
