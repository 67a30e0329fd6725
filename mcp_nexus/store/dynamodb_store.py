"""DynamoDB-backed gateway store with in-memory TTL cache for prefix lookups."""

import asyncio
import time
from datetime import datetime

from mcp_nexus.errors import StorageError
from mcp_nexus.store.base import GatewayStore
from mcp_nexus.store.models import (
    EPOCH,
    ClientToken,
    ProviderCredential,
    format_timestamp,
    parse_timestamp,
)


class DynamoDBGatewayStore(GatewayStore):
    """Two tables: client tokens (GSI on token_prefix) and provider
    credentials (GSI on provider_id). Both are keyed by ``id``."""

    CACHE_TTL = 60  # seconds; revocation must become visible quickly

    def __init__(self, tokens_table: str, credentials_table: str, region: str = "us-east-1"):
        self._tokens_table_name = tokens_table
        self._credentials_table_name = credentials_table
        self._region = region
        self._tokens_table = None
        self._credentials_table = None
        self._cache: dict[str, tuple[ClientToken, float]] = {}

    def _get_tables(self):
        """Lazy-init boto3 Table resources."""
        if self._tokens_table is None or self._credentials_table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._tokens_table = dynamodb.Table(self._tokens_table_name)
            self._credentials_table = dynamodb.Table(self._credentials_table_name)
        return self._tokens_table, self._credentials_table

    async def _run(self, fn, *args):
        """Run a blocking boto3 call off the event loop, mapping failures."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(fn, *args)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"DynamoDB error: {e}") from e

    # --- client tokens ---

    async def get_client_token_by_prefix(self, prefix: str) -> ClientToken | None:
        if prefix in self._cache:
            token, expires_at = self._cache[prefix]
            if time.monotonic() < expires_at:
                return token
            del self._cache[prefix]

        result = await self._run(self._query_by_prefix, prefix)

        # Misses are not cached so a newly issued token resolves immediately
        if result is not None:
            self._cache[prefix] = (result, time.monotonic() + self.CACHE_TTL)
        return result

    def _query_by_prefix(self, prefix: str) -> ClientToken | None:
        from boto3.dynamodb.conditions import Key

        tokens, _ = self._get_tables()
        resp = tokens.query(
            IndexName="token_prefix_index",
            KeyConditionExpression=Key("token_prefix").eq(prefix),
            Limit=1,
        )
        items = resp.get("Items", [])
        if not items:
            return None
        return _token_from_item(items[0])

    async def get_client_token(self, token_id: str) -> ClientToken | None:
        tokens, _ = self._get_tables()
        resp = await self._run(lambda: tokens.get_item(Key={"id": token_id}))
        item = resp.get("Item")
        return _token_from_item(item) if item else None

    async def list_client_tokens(self) -> list[ClientToken]:
        tokens, _ = self._get_tables()
        items = await self._run(_scan_all, tokens)
        return sorted((_token_from_item(i) for i in items), key=lambda t: t.created_at)

    async def persist_client_token(self, record: ClientToken) -> None:
        tokens, _ = self._get_tables()
        await self._run(lambda: tokens.put_item(Item=_token_to_item(record)))
        self._cache.pop(record.token_prefix, None)

    # --- provider credentials ---

    async def get_provider_credentials(self, provider_id: str) -> list[ProviderCredential]:
        from boto3.dynamodb.conditions import Key

        _, creds = self._get_tables()
        resp = await self._run(
            lambda: creds.query(
                IndexName="provider_id_index",
                KeyConditionExpression=Key("provider_id").eq(provider_id),
            )
        )
        return [_credential_from_item(i) for i in resp.get("Items", [])]

    async def get_credential(self, credential_id: str) -> ProviderCredential | None:
        _, creds = self._get_tables()
        resp = await self._run(lambda: creds.get_item(Key={"id": credential_id}))
        item = resp.get("Item")
        return _credential_from_item(item) if item else None

    async def persist_credential(self, record: ProviderCredential) -> None:
        _, creds = self._get_tables()
        await self._run(lambda: creds.put_item(Item=_credential_to_item(record)))

    async def touch_credential_last_used(self, credential_id: str, at: datetime) -> None:
        _, creds = self._get_tables()
        await self._run(
            lambda: creds.update_item(
                Key={"id": credential_id},
                UpdateExpression="SET last_used_at = :ts",
                ExpressionAttributeValues={":ts": format_timestamp(at)},
            )
        )


def _scan_all(table) -> list[dict]:
    items: list[dict] = []
    kwargs: dict = {}
    while True:
        resp = table.scan(**kwargs)
        items.extend(resp.get("Items", []))
        if "LastEvaluatedKey" not in resp:
            return items
        kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


def _binary(value) -> bytes | None:
    """boto3 returns Binary attributes wrapped in boto3.dynamodb.types.Binary."""
    if value is None:
        return None
    return bytes(value.value) if hasattr(value, "value") else bytes(value)


def _token_to_item(token: ClientToken) -> dict:
    item = {
        "id": token.id,
        "token_prefix": token.token_prefix,
        "token_hash": token.token_hash,
        "created_at": format_timestamp(token.created_at),
    }
    optional = {
        "token_encrypted": token.token_encrypted,
        "description": token.description,
        "allowed_tools": token.allowed_tools,
        "rate_limit": token.rate_limit,
        "expires_at": format_timestamp(token.expires_at),
        "revoked_at": format_timestamp(token.revoked_at),
    }
    item.update({k: v for k, v in optional.items() if v is not None})
    return item


def _token_from_item(item: dict) -> ClientToken:
    rate_limit = item.get("rate_limit")
    allowed_tools = item.get("allowed_tools")
    return ClientToken(
        id=item["id"],
        token_prefix=item["token_prefix"],
        token_hash=item["token_hash"],
        token_encrypted=_binary(item.get("token_encrypted")),
        description=item.get("description"),
        allowed_tools=list(allowed_tools) if allowed_tools is not None else None,
        rate_limit=int(rate_limit) if rate_limit is not None else None,
        expires_at=parse_timestamp(item.get("expires_at")),
        revoked_at=parse_timestamp(item.get("revoked_at")),
        created_at=parse_timestamp(item.get("created_at")) or EPOCH,
    )


def _credential_to_item(cred: ProviderCredential) -> dict:
    item = {
        "id": cred.id,
        "provider_id": cred.provider_id,
        "label": cred.label,
        "masked_key": cred.masked_key,
        "encrypted_key": cred.encrypted_key,
        "status": cred.status,
        "created_at": format_timestamp(cred.created_at),
    }
    if cred.last_used_at is not None:
        item["last_used_at"] = format_timestamp(cred.last_used_at)
    return item


def _credential_from_item(item: dict) -> ProviderCredential:
    return ProviderCredential(
        id=item["id"],
        provider_id=item["provider_id"],
        label=item.get("label", ""),
        masked_key=item.get("masked_key", ""),
        encrypted_key=_binary(item.get("encrypted_key")) or b"",
        status=item.get("status", "active"),
        last_used_at=parse_timestamp(item.get("last_used_at")),
        created_at=parse_timestamp(item.get("created_at")) or EPOCH,
    )
