"""Brave Search provider implementation."""

from mcp_nexus.config.settings import get_settings
from mcp_nexus.errors import UnknownToolError, ValidationError
from mcp_nexus.providers.base import HTTPSearchProvider, ProviderResponse
from mcp_nexus.providers.catalog import BRAVE

_ENDPOINTS = {
    "brave_web_search": "/res/v1/web/search",
    "brave_news_search": "/res/v1/news/search",
}


class BraveProvider(HTTPSearchProvider):

    provider_id = BRAVE

    async def call_tool(self, tool_name: str, arguments: dict, api_key: str) -> ProviderResponse:
        path = _ENDPOINTS.get(tool_name)
        if path is None:
            raise UnknownToolError(tool_name)

        query = arguments.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ValidationError(f"{tool_name} requires a non-empty 'query'")

        base_url = get_settings().brave_base_url.rstrip("/")
        params = {"q": query, "count": arguments.get("max_results", 5)}
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": api_key,
        }
        return await self._send("GET", f"{base_url}{path}", params=params, headers=headers)
