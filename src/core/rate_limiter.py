"""Sliding-window limiter for the unauthenticated auth endpoints.

Login, refresh, account confirmation, password reset, company registration
and invitation redemption are reachable without a token. Each client IP gets
a budget of attempts per window across all of them; the budget is kept in
process memory, so it is per-instance rather than global.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_attempts: int = 10
    window_seconds: int = 60
    cleanup_interval_seconds: int = 300

    @classmethod
    def from_settings(cls) -> RateLimitConfig:
        from src.core.config import get_settings

        settings = get_settings()
        return cls(
            max_attempts=settings.rate_limit_auth_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one attempt against a client's budget."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


class AttemptWindow:
    """Timestamps of one client's attempts, oldest first."""

    def __init__(self) -> None:
        self.attempts: deque[float] = deque()

    def expire(self, now: float, window_seconds: int) -> None:
        cutoff = now - window_seconds
        while self.attempts and self.attempts[0] <= cutoff:
            self.attempts.popleft()

    def retry_after(self, now: float, window_seconds: int) -> int:
        """Whole seconds until the oldest attempt leaves the window."""
        if not self.attempts:
            return 0
        return max(1, int(self.attempts[0] + window_seconds - now) + 1)


class AuthAttemptLimiter:
    """Thread-safe per-client attempt budgets with periodic eviction."""

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._windows: dict[str, AttemptWindow] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Auth rate limiter eviction task started")

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Auth rate limiter eviction task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            evicted = await self.cleanup()
            if evicted:
                logger.debug("Evicted %d idle rate limit windows", evicted)

    async def hit(
        self,
        key: str,
        max_attempts: int | None = None,
        window_seconds: int | None = None,
    ) -> RateLimitDecision:
        """Record an attempt for ``key`` unless its budget is spent.

        Args:
            key: Client identifier, e.g. ``auth:203.0.113.7``.
            max_attempts: Budget override for this call.
            window_seconds: Window override for this call.

        Returns:
            RateLimitDecision: Whether the attempt was admitted and what is left.
        """
        limit = max_attempts or self.config.max_attempts
        window_seconds = window_seconds or self.config.window_seconds
        now = time.time()

        with self._lock:
            window = self._windows.setdefault(key, AttemptWindow())
            window.expire(now, window_seconds)

            if len(window.attempts) >= limit:
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    retry_after=window.retry_after(now, window_seconds),
                )

            window.attempts.append(now)
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit - len(window.attempts))

    async def cleanup(self) -> int:
        """Drop windows whose attempts have all expired."""
        now = time.time()
        with self._lock:
            idle = []
            for key, window in self._windows.items():
                window.expire(now, self.config.window_seconds)
                if not window.attempts:
                    idle.append(key)
            for key in idle:
                del self._windows[key]
        return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "tracked_clients": len(self._windows),
                "max_attempts": self.config.max_attempts,
                "window_seconds": self.config.window_seconds,
            }


_rate_limiter: AuthAttemptLimiter | None = None


def get_rate_limiter() -> AuthAttemptLimiter:
    """Get or create the process-wide limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = AuthAttemptLimiter(RateLimitConfig.from_settings())
    return _rate_limiter


async def init_rate_limiter() -> AuthAttemptLimiter:
    limiter = get_rate_limiter()
    await limiter.start_cleanup_task()
    return limiter


async def shutdown_rate_limiter() -> None:
    if _rate_limiter:
        await _rate_limiter.stop_cleanup_task()
