"""
Rate Limiter Service

Fixed window counter per client key, kept in memory (single instance).
A key's window opens on its first request and resets once it has elapsed.
"""
import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.requests import HTTPConnection

from liga.core.rate_limit_config import RateLimit
from liga.core.logging import api_logger


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int  # Requests remaining in window
    reset_after: int  # Seconds until window resets
    limit: int  # Total limit for the window

    @property
    def retry_after(self) -> int:
        """Seconds to wait before retrying (for 429 response)."""
        return self.reset_after if not self.allowed else 0


@dataclass
class WindowEntry:
    """Counter for one key's current window."""
    window_start: float
    window_seconds: float
    count: int = 0

    def expired(self, now: float) -> bool:
        return now - self.window_start >= self.window_seconds


class InMemoryRateLimiter:
    """
    In-memory rate limiter.
    Suitable for single-instance deployments.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._windows: Dict[str, WindowEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._last_cleanup = clock()

    async def check_rate_limit(self, key: str, limit: RateLimit) -> RateLimitResult:
        """
        Count a request against `key` and report whether it is allowed.

        Args:
            key: Unique identifier (e.g., "ip:192.168.1.1")
            limit: Rate limit configuration

        Returns:
            RateLimitResult with allowed status and metadata
        """
        async with self._lock:
            now = self._clock()
            entry = self._windows.get(key)
            if entry is None or entry.expired(now):
                entry = WindowEntry(window_start=now, window_seconds=limit.window_seconds)
                self._windows[key] = entry

            elapsed = now - entry.window_start
            reset_after = max(0, math.ceil(limit.window_seconds - elapsed))

            if entry.count < limit.max_requests:
                entry.count += 1
                return RateLimitResult(
                    allowed=True,
                    remaining=limit.max_requests - entry.count,
                    reset_after=reset_after,
                    limit=limit.max_requests,
                )

            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_after=reset_after,
                limit=limit.max_requests,
            )

    async def reset(self, key: Optional[str] = None):
        """Forget one key's window, or every window."""
        async with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    async def cleanup_expired(self) -> int:
        """Remove expired window entries to prevent memory growth."""
        async with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._windows.items() if entry.expired(now)]
            for key in expired_keys:
                del self._windows[key]
            self._last_cleanup = now

        if expired_keys:
            api_logger.debug(f"Rate limiter cleanup: removed {len(expired_keys)} expired entries")
        return len(expired_keys)

    def get_stats(self) -> dict:
        """Get current rate limiter statistics."""
        return {
            "active_windows": len(self._windows),
            "last_cleanup": self._last_cleanup,
        }


def get_client_ip(request: HTTPConnection, real_ip_header: Optional[str] = None) -> str:
    """
    Extract client IP from request.
    The proxy header is only consulted when one is configured.
    """
    if real_ip_header:
        forwarded = request.headers.get(real_ip_header)
        if forwarded:
            # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


async def rate_limit_cleanup_task(limiter: InMemoryRateLimiter, interval: float):
    """Background task to periodically clean up expired rate limit entries."""
    while True:
        await asyncio.sleep(interval)
        try:
            await limiter.cleanup_expired()
        except Exception as e:
            api_logger.error("Rate limit cleanup error", error=e)
