"""Tests for mcp_nexus/security/ratelimit.py — fixed-window rate limiting."""

import asyncio

import pytest

from mcp_nexus.errors import RateLimitError
from mcp_nexus.security.auth import Identity
from mcp_nexus.security.ratelimit import GLOBAL_SCOPE, RateLimiter


def _identity(token_id="tok_1", rate_limit=None) -> Identity:
    return Identity(client_token_id=token_id, token_prefix="mcp_aaaaaaaaaaaa", rate_limit=rate_limit)


class TestCheck:

    async def test_allows_within_limit(self, limiter):
        decision = await limiter.check("tok_1", 5)
        assert decision.allowed
        assert decision.count == 1
        assert decision.remaining == 4
        assert decision.scope == "client"

    async def test_denies_over_limit(self, limiter):
        for _ in range(2):
            assert (await limiter.check("tok_1", 2)).allowed
        decision = await limiter.check("tok_1", 2)
        assert not decision.allowed
        assert decision.remaining == 0
        assert 0 < decision.retry_after_ms <= 60_000

    async def test_scopes_are_independent(self, limiter):
        await limiter.check("tok_1", 1)
        assert not (await limiter.check("tok_1", 1)).allowed
        assert (await limiter.check("tok_2", 1)).allowed

    async def test_global_scope_label(self, limiter):
        decision = await limiter.check(GLOBAL_SCOPE, 10)
        assert decision.scope == "global"

    async def test_window_expiry_resets_count(self):
        limiter = RateLimiter(default_client_limit=1, global_limit=100, window_seconds=0.05)
        assert (await limiter.check("tok_1", 1)).allowed
        assert not (await limiter.check("tok_1", 1)).allowed
        await asyncio.sleep(0.08)
        decision = await limiter.check("tok_1", 1)
        assert decision.allowed
        assert decision.count == 1

    async def test_concurrent_checks_count_exactly(self, limiter):
        decisions = await asyncio.gather(*(limiter.check("tok_1", 10) for _ in range(25)))
        assert sum(d.allowed for d in decisions) == 10
        assert sorted(d.count for d in decisions) == list(range(1, 26))

    async def test_elapsed_windows_evicted(self):
        limiter = RateLimiter(default_client_limit=5, global_limit=100, window_seconds=0.05)
        await limiter.check("tok_old", 5)
        await asyncio.sleep(0.08)
        await limiter.check("tok_new", 5)
        assert "tok_old" not in limiter._windows
        assert "tok_new" in limiter._windows

    async def test_live_windows_kept(self):
        limiter = RateLimiter(default_client_limit=5, global_limit=100, window_seconds=60)
        for i in range(10):
            await limiter.check(f"tok_{i}", 5)
        assert len(limiter._windows) == 10

    async def test_reset(self, limiter):
        await limiter.check("tok_1", 1)
        limiter.reset("tok_1")
        assert (await limiter.check("tok_1", 1)).allowed
        await limiter.check(GLOBAL_SCOPE, 1)
        limiter.reset()
        assert (await limiter.check(GLOBAL_SCOPE, 1)).allowed


class TestCheckRequest:

    def test_effective_limit(self, limiter):
        assert limiter.effective_client_limit(_identity()) == 60
        assert limiter.effective_client_limit(_identity(rate_limit=100)) == 100

    async def test_client_limit_exceeded(self):
        limiter = RateLimiter(default_client_limit=60, global_limit=600)
        identity = _identity(rate_limit=2)
        await limiter.check_request(identity)
        await limiter.check_request(identity)
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.check_request(identity)
        err = exc_info.value
        assert err.scope == "client"
        assert err.retry_after_ms > 0
        assert err.data["scope"] == "client"
        assert err.data["retryAfterMs"] == err.retry_after_ms

    async def test_global_limit_exceeded(self):
        limiter = RateLimiter(default_client_limit=60, global_limit=3)
        for i in range(3):
            await limiter.check_request(_identity(f"tok_{i}"))
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.check_request(_identity("tok_new"))
        assert exc_info.value.scope == "global"

    async def test_client_scope_reported_first(self):
        limiter = RateLimiter(default_client_limit=1, global_limit=1)
        await limiter.check_request(_identity())
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.check_request(_identity())
        assert exc_info.value.scope == "client"

    async def test_both_scopes_incremented_on_denial(self):
        limiter = RateLimiter(default_client_limit=1, global_limit=100)
        identity = _identity()
        await limiter.check_request(identity)
        with pytest.raises(RateLimitError):
            await limiter.check_request(identity)
        decision = await limiter.check(GLOBAL_SCOPE, 100)
        assert decision.count == 3

    async def test_returns_client_decision(self, limiter):
        decision = await limiter.check_request(_identity(rate_limit=100))
        assert decision.scope == "client"
        assert decision.limit == 100
        assert decision.remaining == 99
