"""Abstract base for upstream search providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from mcp_nexus.config.settings import get_settings
from mcp_nexus.errors import UpstreamError


@dataclass
class ProviderResponse:
    status_code: int
    body: dict

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class SearchProvider(ABC):
    """Base class for upstream tool providers."""

    provider_id: str = ""

    @abstractmethod
    async def call_tool(self, tool_name: str, arguments: dict, api_key: str) -> ProviderResponse:
        """Invoke one tool upstream with the selected pool credential.

        Args:
            tool_name: Catalog tool name, e.g. "tavily_search".
            arguments: Tool arguments from the MCP ``tools/call`` request.
            api_key: Plaintext upstream key chosen by the credential pool.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass


class HTTPSearchProvider(SearchProvider):
    """Shared httpx client handling for HTTP-based providers."""

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            timeout = get_settings().upstream_timeout_seconds
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))
        return self._client

    async def _send(self, method: str, url: str, **kwargs) -> ProviderResponse:
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.ConnectError:
            raise UpstreamError(f"Cannot reach {self.provider_id} upstream", status_code=502)
        except httpx.TimeoutException:
            raise UpstreamError(f"{self.provider_id} upstream timed out", status_code=504)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream error: {e}", status_code=502)

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}
        if not isinstance(body, dict):
            body = {"result": body}
        return ProviderResponse(status_code=response.status_code, body=body)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
