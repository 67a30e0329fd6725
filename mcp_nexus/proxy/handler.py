"""Proxy handler — thin wrapper delegating to the provider registry."""

from mcp_nexus.providers.base import ProviderResponse
from mcp_nexus.providers.catalog import ToolSpec
from mcp_nexus.providers.pool import SelectedCredential
from mcp_nexus.providers.registry import close_all_providers, get_provider


async def forward_to_provider(
    tool: ToolSpec, arguments: dict, credential: SelectedCredential
) -> ProviderResponse:
    """Route a tool call to the provider that serves it."""
    provider = get_provider(tool.provider_id)
    return await provider.call_tool(
        tool_name=tool.name,
        arguments=arguments,
        api_key=credential.api_key,
    )


async def close_client() -> None:
    """Gracefully close all providers on shutdown."""
    await close_all_providers()
