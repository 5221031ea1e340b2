"""
Rate Limiting Configuration

One global tier: every client identity (source address by default) may make
`RATE_LIMIT_MAX` requests per `RATE_LIMIT_WINDOW_MS` window.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from liga.core.config import Settings


@dataclass(frozen=True)
class RateLimit:
    """Rate limit configuration for a window."""
    max_requests: int  # Number of requests allowed
    window_ms: int  # Window length in milliseconds

    @classmethod
    def from_settings(cls, config: Settings) -> "RateLimit":
        return cls(max_requests=config.RATE_LIMIT_MAX, window_ms=config.RATE_LIMIT_WINDOW_MS)

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    @property
    def policy(self) -> str:
        """Value of the `RateLimit-Policy` header, e.g. `200;w=900`."""
        return f"{self.max_requests};w={int(self.window_seconds)}"


@dataclass
class RateLimitSettings:
    """Global rate limiting settings."""
    enabled: bool = True
    # Whitelisted source addresses are never limited
    whitelist_ips: List[str] = field(default_factory=list)
    # Header carrying the real client address when behind a trusted proxy
    real_ip_header: Optional[str] = None
    # Seconds between sweeps of expired windows
    cleanup_interval: int = 300

    @classmethod
    def from_settings(cls, config: Settings) -> "RateLimitSettings":
        return cls(
            enabled=config.RATE_LIMIT_ENABLED,
            whitelist_ips=config.whitelist_ips,
            real_ip_header=config.RATE_LIMIT_REAL_IP_HEADER or None,
            cleanup_interval=config.RATE_LIMIT_CLEANUP_INTERVAL,
        )

