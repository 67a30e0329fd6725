"""Tavily provider implementation."""

from mcp_nexus.config.settings import get_settings
from mcp_nexus.errors import UnknownToolError, ValidationError
from mcp_nexus.providers.base import HTTPSearchProvider, ProviderResponse
from mcp_nexus.providers.catalog import TAVILY


class TavilyProvider(HTTPSearchProvider):
    """Forwards tavily_* tools to the Tavily REST API."""

    provider_id = TAVILY

    async def call_tool(self, tool_name: str, arguments: dict, api_key: str) -> ProviderResponse:
        base_url = get_settings().tavily_base_url.rstrip("/")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

        if tool_name == "tavily_search":
            query = arguments.get("query")
            if not isinstance(query, str) or not query.strip():
                raise ValidationError("tavily_search requires a non-empty 'query'")
            payload = {
                "query": query,
                "max_results": arguments.get("max_results", 5),
                "search_depth": arguments.get("search_depth", "basic"),
                "topic": arguments.get("topic", "general"),
            }
            return await self._send("POST", f"{base_url}/search", json=payload, headers=headers)

        if tool_name == "tavily_extract":
            urls = arguments.get("urls")
            if not isinstance(urls, list) or not urls:
                raise ValidationError("tavily_extract requires a non-empty 'urls' list")
            return await self._send("POST", f"{base_url}/extract", json={"urls": urls}, headers=headers)

        raise UnknownToolError(tool_name)
