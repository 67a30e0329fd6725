"""Shared fixtures for the MCP Nexus Gateway test suite."""

import base64
import os

import pytest

import mcp_nexus.providers.registry as registry_mod
import mcp_nexus.proxy.factory as dispatcher_factory_mod
import mcp_nexus.store.factory as store_factory_mod
from mcp_nexus.config.settings import get_settings
from mcp_nexus.providers.pool import CredentialPool
from mcp_nexus.proxy.dispatcher import GatewayDispatcher
from mcp_nexus.security.auth import TokenAuthority
from mcp_nexus.security.ratelimit import RateLimiter
from mcp_nexus.store.json_store import JSONGatewayStore


@pytest.fixture
def key_bytes() -> bytes:
    return os.urandom(32)


@pytest.fixture
def key_b64(key_bytes) -> str:
    """KEY_ENCRYPTION_SECRET form of ``key_bytes``."""
    return base64.b64encode(key_bytes).decode("ascii")


@pytest.fixture
def store(tmp_path) -> JSONGatewayStore:
    return JSONGatewayStore(str(tmp_path / "store.json"))


@pytest.fixture
def authority(store, key_bytes) -> TokenAuthority:
    return TokenAuthority(store, key_bytes)


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(default_client_limit=60, global_limit=600)


@pytest.fixture
def pool(store, key_bytes) -> CredentialPool:
    return CredentialPool(store, key_bytes, strategy="round_robin")


@pytest.fixture
def dispatcher(authority, limiter, pool) -> GatewayDispatcher:
    return GatewayDispatcher(authority=authority, limiter=limiter, pool=pool)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(GLOBAL_RATE_LIMIT_PER_MINUTE="10", STORE_BACKEND="json")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture
def reset_singletons(monkeypatch):
    """Reset store, dispatcher and provider singletons around a test."""
    monkeypatch.setattr(store_factory_mod, "_store", None)
    monkeypatch.setattr(dispatcher_factory_mod, "_dispatcher", None)
    monkeypatch.setattr(registry_mod, "_providers", {})
    yield
    monkeypatch.setattr(store_factory_mod, "_store", None)
    monkeypatch.setattr(dispatcher_factory_mod, "_dispatcher", None)
    monkeypatch.setattr(registry_mod, "_providers", {})


@pytest.fixture
def gateway_env(override_settings, reset_singletons, tmp_path, key_b64):
    """Settings for an app wired to a temp JSON store."""
    override_settings(
        KEY_ENCRYPTION_SECRET=key_b64,
        STORE_BACKEND="json",
        STORE_PATH=str(tmp_path / "gateway-store.json"),
        ADMIN_API_TOKEN="admin-secret",
        DEFAULT_CLIENT_RATE_LIMIT_PER_MINUTE="60",
        GLOBAL_RATE_LIMIT_PER_MINUTE="600",
        CREDENTIAL_SELECTION_STRATEGY="round_robin",
    )
    return override_settings
