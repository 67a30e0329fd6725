"""File-backed gateway store. Reloads on mtime change, writes atomically."""

import asyncio
import base64
import json
import os
import tempfile
from dataclasses import replace
from datetime import datetime

from mcp_nexus.errors import StorageError
from mcp_nexus.store.base import GatewayStore
from mcp_nexus.store.models import (
    ClientToken,
    EPOCH,
    ProviderCredential,
    format_timestamp,
    parse_timestamp,
)


def _b64(value: bytes | None) -> str | None:
    return base64.b64encode(value).decode("ascii") if value is not None else None


def _unb64(value: str | None) -> bytes | None:
    return base64.b64decode(value) if value else None


def token_to_item(token: ClientToken) -> dict:
    return {
        "id": token.id,
        "tokenPrefix": token.token_prefix,
        "tokenHash": token.token_hash,
        "tokenEncrypted": _b64(token.token_encrypted),
        "description": token.description,
        "allowedTools": token.allowed_tools,
        "rateLimit": token.rate_limit,
        "expiresAt": format_timestamp(token.expires_at),
        "revokedAt": format_timestamp(token.revoked_at),
        "createdAt": format_timestamp(token.created_at),
    }


def token_from_item(item: dict) -> ClientToken:
    rate_limit = item.get("rateLimit")
    return ClientToken(
        id=item["id"],
        token_prefix=item["tokenPrefix"],
        token_hash=item["tokenHash"],
        token_encrypted=_unb64(item.get("tokenEncrypted")),
        description=item.get("description"),
        allowed_tools=item.get("allowedTools"),
        rate_limit=int(rate_limit) if rate_limit is not None else None,
        expires_at=parse_timestamp(item.get("expiresAt")),
        revoked_at=parse_timestamp(item.get("revokedAt")),
        created_at=parse_timestamp(item.get("createdAt")) or EPOCH,
    )


def credential_to_item(cred: ProviderCredential) -> dict:
    return {
        "id": cred.id,
        "providerId": cred.provider_id,
        "label": cred.label,
        "maskedKey": cred.masked_key,
        "encryptedKey": _b64(cred.encrypted_key),
        "status": cred.status,
        "lastUsedAt": format_timestamp(cred.last_used_at),
        "createdAt": format_timestamp(cred.created_at),
    }


def credential_from_item(item: dict) -> ProviderCredential:
    return ProviderCredential(
        id=item["id"],
        provider_id=item["providerId"],
        label=item.get("label", ""),
        masked_key=item.get("maskedKey", ""),
        encrypted_key=_unb64(item.get("encryptedKey")) or b"",
        status=item.get("status", "active"),
        last_used_at=parse_timestamp(item.get("lastUsedAt")),
        created_at=parse_timestamp(item.get("createdAt")) or EPOCH,
    )


class JSONGatewayStore(GatewayStore):
    """Single JSON document holding client tokens and provider credentials.

    Layout::

        {"clientTokens": [...], "providerCredentials": [...]}

    Missing file means an empty store; it is created on first write. Reads
    return copies and writes only replace in-memory state once the file has
    been written, so a failed write leaves the store as it was.
    """

    def __init__(self, path: str):
        self._path = path
        self._tokens: dict[str, ClientToken] = {}
        self._credentials: dict[str, ProviderCredential] = {}
        self._last_mtime: float = 0.0
        self._write_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        try:
            mtime = os.path.getmtime(self._path)
        except OSError:
            return

        if mtime == self._last_mtime:
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            tokens = [token_from_item(i) for i in data.get("clientTokens", [])]
            creds = [credential_from_item(i) for i in data.get("providerCredentials", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Cannot load store file {self._path}: {e}") from e

        self._tokens = {t.id: t for t in tokens}
        self._credentials = {c.id: c for c in creds}
        self._last_mtime = mtime

    def _flush(self, tokens: dict[str, ClientToken], credentials: dict[str, ProviderCredential]) -> None:
        """Write ``tokens`` and ``credentials`` to disk, then adopt them."""
        data = {
            "clientTokens": [token_to_item(t) for t in tokens.values()],
            "providerCredentials": [credential_to_item(c) for c in credentials.values()],
        }
        directory = os.path.dirname(os.path.abspath(self._path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._path)
            self._last_mtime = os.path.getmtime(self._path)
        except OSError as e:
            raise StorageError(f"Cannot write store file {self._path}: {e}") from e

        self._tokens = tokens
        self._credentials = credentials

    async def get_client_token_by_prefix(self, prefix: str) -> ClientToken | None:
        self._load()
        for token in self._tokens.values():
            if token.token_prefix == prefix:
                return replace(token)
        return None

    async def get_client_token(self, token_id: str) -> ClientToken | None:
        self._load()
        token = self._tokens.get(token_id)
        return replace(token) if token is not None else None

    async def list_client_tokens(self) -> list[ClientToken]:
        self._load()
        return sorted((replace(t) for t in self._tokens.values()), key=lambda t: t.created_at)

    async def persist_client_token(self, record: ClientToken) -> None:
        async with self._write_lock:
            self._load()
            for existing in self._tokens.values():
                if existing.token_prefix == record.token_prefix and existing.id != record.id:
                    raise StorageError(f"Duplicate token prefix: {record.token_prefix}")
            self._flush({**self._tokens, record.id: replace(record)}, self._credentials)

    async def get_provider_credentials(self, provider_id: str) -> list[ProviderCredential]:
        self._load()
        return [replace(c) for c in self._credentials.values() if c.provider_id == provider_id]

    async def get_credential(self, credential_id: str) -> ProviderCredential | None:
        self._load()
        cred = self._credentials.get(credential_id)
        return replace(cred) if cred is not None else None

    async def persist_credential(self, record: ProviderCredential) -> None:
        async with self._write_lock:
            self._load()
            self._flush(self._tokens, {**self._credentials, record.id: replace(record)})

    async def touch_credential_last_used(self, credential_id: str, at: datetime) -> None:
        async with self._write_lock:
            self._load()
            cred = self._credentials.get(credential_id)
            if cred is None:
                raise StorageError(f"Credential not found: {credential_id}")
            self._flush(self._tokens, {**self._credentials, credential_id: replace(cred, last_used_at=at)})
