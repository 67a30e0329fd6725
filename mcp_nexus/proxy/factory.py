"""Factory wiring the gateway core from settings."""

from mcp_nexus.config.settings import get_settings
from mcp_nexus.providers.pool import CredentialPool
from mcp_nexus.proxy.dispatcher import GatewayDispatcher
from mcp_nexus.security.auth import TokenAuthority
from mcp_nexus.security.ratelimit import RateLimiter
from mcp_nexus.store.factory import get_store

_dispatcher: GatewayDispatcher | None = None


def get_dispatcher() -> GatewayDispatcher:
    """Get the dispatcher singleton.

    Raises:
        ConfigError: KEY_ENCRYPTION_SECRET or another setting is unusable.
    """
    global _dispatcher
    if _dispatcher is not None:
        return _dispatcher

    settings = get_settings()
    key = settings.encryption_key()
    store = get_store()

    _dispatcher = GatewayDispatcher(
        authority=TokenAuthority(store, key),
        limiter=RateLimiter(
            default_client_limit=settings.default_client_rate_limit_per_minute,
            global_limit=settings.global_rate_limit_per_minute,
        ),
        pool=CredentialPool(store, key, strategy=settings.credential_selection_strategy),
    )
    return _dispatcher
