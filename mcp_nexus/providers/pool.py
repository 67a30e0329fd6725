"""Upstream credential pools.

Each provider (Tavily, Brave) has a pool of interchangeable API keys. Keys
are stored AES-GCM encrypted and shown only in masked form. Selection
reads the pool from the store at call time, so a credential disabled by
an administrator drops out of rotation on the next pick.
"""

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass

from mcp_nexus.crypto import codec
from mcp_nexus.errors import (
    ConfigError,
    KeyPoolExhaustedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from mcp_nexus.providers.catalog import PROVIDERS
from mcp_nexus.store.base import GatewayStore
from mcp_nexus.store.models import ProviderCredential, utcnow

logger = logging.getLogger("nexus.pool")

ROUND_ROBIN = "round_robin"
RANDOM = "random"
STRATEGIES = (ROUND_ROBIN, RANDOM)
STATUSES = ("active", "disabled")


@dataclass
class SelectedCredential:
    credential: ProviderCredential
    api_key: str  # plaintext; never logged

    def __repr__(self) -> str:
        return f"SelectedCredential(id={self.credential.id!r}, key={self.credential.masked_key!r})"


def _order_key(cred: ProviderCredential) -> tuple:
    return (cred.created_at, cred.id)


class _Cursor:
    """Round-robin position for one provider."""

    __slots__ = ("lock", "last")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.last: tuple | None = None  # ordering key of the last pick


class CredentialPool:

    def __init__(self, store: GatewayStore, encryption_key: bytes, strategy: str = ROUND_ROBIN):
        if strategy not in STRATEGIES:
            raise ConfigError(f"Unknown credential selection strategy: {strategy}")
        self._store = store
        self._key = encryption_key
        self.strategy = strategy
        self._cursors: dict[str, _Cursor] = {}

    def _cursor(self, provider_id: str) -> _Cursor:
        cursor = self._cursors.get(provider_id)
        if cursor is None:
            cursor = self._cursors[provider_id] = _Cursor()
        return cursor

    async def select(self, provider_id: str, strategy: str | None = None) -> SelectedCredential:
        """Pick the next usable credential for ``provider_id``.

        Raises:
            KeyPoolExhaustedError: no active credential for the provider.
            ConfigError: unknown strategy.
        """
        strategy = strategy or self.strategy
        if strategy not in STRATEGIES:
            raise ConfigError(f"Unknown credential selection strategy: {strategy}")

        creds = await self._store.get_provider_credentials(provider_id)
        active = sorted((c for c in creds if c.is_active), key=_order_key)
        if not active:
            raise KeyPoolExhaustedError(provider_id)

        if strategy == RANDOM:
            chosen = secrets.choice(active)
        else:
            cursor = self._cursor(provider_id)
            async with cursor.lock:
                chosen = active[0]
                if cursor.last is not None:
                    for cred in active:
                        if _order_key(cred) > cursor.last:
                            chosen = cred
                            break
                cursor.last = _order_key(chosen)

        api_key = codec.decrypt(chosen.encrypted_key, self._key)
        await self._touch(chosen)
        return SelectedCredential(credential=chosen, api_key=api_key)

    async def _touch(self, cred: ProviderCredential) -> None:
        """Record last use. Best-effort: a storage failure never fails the pick."""
        now = utcnow()
        try:
            await self._store.touch_credential_last_used(cred.id, now)
        except StorageError as e:
            logger.warning(
                "Failed to update credential last_used_at",
                extra={"audit_data": {"credential_id": cred.id, "error": str(e)}},
            )
            return
        cred.last_used_at = now

    # --- admin operations ---

    async def add_credential(self, provider_id: str, label: str, api_key: str) -> ProviderCredential:
        if provider_id not in PROVIDERS:
            raise ValidationError(f"Unknown provider: {provider_id}")
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValidationError("apiKey is required")

        record = ProviderCredential(
            id=f"key_{uuid.uuid4().hex}",
            provider_id=provider_id,
            label=label or "",
            masked_key=codec.mask(api_key),
            encrypted_key=codec.encrypt(api_key, self._key),
        )
        await self._store.persist_credential(record)
        logger.info(
            "Provider credential added",
            extra={"audit_data": {"provider": provider_id, "credential_id": record.id,
                                  "masked_key": record.masked_key}},
        )
        return record

    async def set_status(
        self, credential_id: str, status: str, provider_id: str | None = None
    ) -> ProviderCredential:
        """Administrator-driven enable/disable. Selection only filters on it."""
        if status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
        record = await self._store.get_credential(credential_id)
        if record is None or (provider_id is not None and record.provider_id != provider_id):
            raise NotFoundError(f"Credential not found: {credential_id}")
        if record.status != status:
            record.status = status
            await self._store.persist_credential(record)
            logger.info(
                "Provider credential status changed",
                extra={"audit_data": {"provider": record.provider_id,
                                      "credential_id": record.id, "status": status}},
            )
        return record

    async def disable_credential(self, credential_id: str) -> ProviderCredential:
        return await self.set_status(credential_id, "disabled")

    async def list_credentials(self, provider_id: str) -> list[ProviderCredential]:
        creds = await self._store.get_provider_credentials(provider_id)
        return sorted(creds, key=_order_key)
