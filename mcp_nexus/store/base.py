"""Persistence contract required by the gateway core.

Implementations may be slow or fallible; any backend failure must be
surfaced as :class:`mcp_nexus.errors.StorageError`.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from mcp_nexus.store.models import ClientToken, ProviderCredential


class GatewayStore(ABC):

    @abstractmethod
    async def get_client_token_by_prefix(self, prefix: str) -> ClientToken | None:
        """Look up a client token by its public prefix. None if absent."""
        ...

    @abstractmethod
    async def get_client_token(self, token_id: str) -> ClientToken | None:
        ...

    @abstractmethod
    async def list_client_tokens(self) -> list[ClientToken]:
        ...

    @abstractmethod
    async def persist_client_token(self, record: ClientToken) -> None:
        """Insert or replace a client token record keyed by id."""
        ...

    @abstractmethod
    async def get_provider_credentials(self, provider_id: str) -> list[ProviderCredential]:
        """All credentials for a provider, regardless of status."""
        ...

    @abstractmethod
    async def get_credential(self, credential_id: str) -> ProviderCredential | None:
        ...

    @abstractmethod
    async def persist_credential(self, record: ProviderCredential) -> None:
        ...

    @abstractmethod
    async def touch_credential_last_used(self, credential_id: str, at: datetime) -> None:
        ...
