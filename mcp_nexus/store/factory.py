"""Factory for gateway store backends."""

from mcp_nexus.config.settings import get_settings
from mcp_nexus.errors import ConfigError
from mcp_nexus.store.base import GatewayStore
from mcp_nexus.store.json_store import JSONGatewayStore

_store: GatewayStore | None = None


def get_store() -> GatewayStore:
    """Get the store singleton for the configured backend."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.store_backend

    if backend == "json":
        _store = JSONGatewayStore(settings.store_path)
        return _store

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from mcp_nexus.store.dynamodb_store import DynamoDBGatewayStore
        _store = DynamoDBGatewayStore(
            tokens_table=settings.dynamodb_tokens_table,
            credentials_table=settings.dynamodb_credentials_table,
            region=settings.aws_region,
        )
        return _store

    raise ConfigError(f"Unknown store backend: {backend}")
