"""Provider registry — singleton map of provider id → instance."""

from mcp_nexus.providers.base import SearchProvider
from mcp_nexus.providers.brave import BraveProvider
from mcp_nexus.providers.catalog import BRAVE, TAVILY
from mcp_nexus.providers.tavily import TavilyProvider

_providers: dict[str, SearchProvider] = {}


def get_provider(name: str) -> SearchProvider:
    """Get or create a provider instance by id."""
    if name in _providers:
        return _providers[name]

    if name == TAVILY:
        _providers[name] = TavilyProvider()
    elif name == BRAVE:
        _providers[name] = BraveProvider()
    else:
        raise ValueError(f"Unknown provider: {name}")

    return _providers[name]


async def close_all_providers() -> None:
    """Gracefully shut down all provider connections."""
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
