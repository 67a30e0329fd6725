"""Rate limiting using in-memory fixed-window counters.

Two scopes are checked per request: the client scope (keyed by client
token id, limit = the token's override or the configured default) and the
global scope (one counter shared by every client). Each window lasts one
minute and is anchored at the first request seen after the previous window
elapsed.

Every check records its increment, even when it denies, so a client that
keeps hammering stays throttled for the rest of the window. Counters live
only in process memory and reset on restart.

Returns standard rate limit metadata for response headers:
- X-RateLimit-Limit
- X-RateLimit-Remaining
- X-RateLimit-Reset
"""

import asyncio
import math
import time
from dataclasses import dataclass

from mcp_nexus.errors import RateLimitError
from mcp_nexus.security.auth import Identity

WINDOW_SECONDS = 60.0
GLOBAL_SCOPE = "global"


@dataclass
class RateLimitDecision:
    allowed: bool
    scope: str  # "client" | "global"
    limit: int
    count: int
    remaining: int
    retry_after_ms: int

    @property
    def reset_seconds(self) -> float:
        return round(self.retry_after_ms / 1000, 1)


class _Window:
    """Counter for one scope. Mutated only while holding ``lock``."""

    __slots__ = ("lock", "started_at", "count")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.started_at: float | None = None
        self.count = 0


class RateLimiter:

    def __init__(
        self,
        default_client_limit: int,
        global_limit: int,
        window_seconds: float = WINDOW_SECONDS,
    ):
        self.default_client_limit = default_client_limit
        self.global_limit = global_limit
        self._window_seconds = window_seconds
        self._windows: dict[str, _Window] = {}
        self._last_sweep = time.monotonic()

    def effective_client_limit(self, identity: Identity) -> int:
        if identity.rate_limit is not None:
            return identity.rate_limit
        return self.default_client_limit

    def _window(self, scope_key: str) -> _Window:
        window = self._windows.get(scope_key)
        if window is None:
            self._evict_elapsed()
            window = self._windows[scope_key] = _Window()
        return window

    def _evict_elapsed(self) -> None:
        """Drop idle windows whose period has ended, at most once per window length.

        An elapsed window would be reset on its next use anyway, so dropping it
        changes no decision. Windows whose lock is held are left alone.
        """
        now = time.monotonic()
        if now - self._last_sweep < self._window_seconds:
            return
        self._last_sweep = now
        for key, window in list(self._windows.items()):
            if window.lock.locked():
                continue
            if window.started_at is None or now - window.started_at >= self._window_seconds:
                del self._windows[key]

    async def check(self, scope_key: str, limit: int) -> RateLimitDecision:
        """Record one request against ``scope_key`` and report whether it fits.

        Args:
            scope_key: Client token id, or GLOBAL_SCOPE.
            limit: Max requests per window for this scope.
        """
        window = self._window(scope_key)
        async with window.lock:
            now = time.monotonic()
            if window.started_at is None or now - window.started_at >= self._window_seconds:
                window.started_at = now
                window.count = 0
            window.count += 1
            count = window.count
            reset_in = window.started_at + self._window_seconds - now

        return RateLimitDecision(
            allowed=count <= limit,
            scope=GLOBAL_SCOPE if scope_key == GLOBAL_SCOPE else "client",
            limit=limit,
            count=count,
            remaining=max(0, limit - count),
            retry_after_ms=max(1, math.ceil(reset_in * 1000)),
        )

    async def check_request(self, identity: Identity) -> RateLimitDecision:
        """Apply client then global limits for one request.

        Both counters are incremented exactly once regardless of outcome.

        Returns:
            The client-scope decision, for response headers.

        Raises:
            RateLimitError: naming the first scope that denied.
        """
        client = await self.check(identity.client_token_id, self.effective_client_limit(identity))
        global_ = await self.check(GLOBAL_SCOPE, self.global_limit)

        for decision in (client, global_):
            if not decision.allowed:
                raise RateLimitError(decision.scope, decision.retry_after_ms, decision.limit)
        return client

    def reset(self, scope_key: str | None = None) -> None:
        """Clear one scope, or every scope when ``scope_key`` is None."""
        if scope_key is None:
            self._windows.clear()
        else:
            self._windows.pop(scope_key, None)
