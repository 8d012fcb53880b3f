"""
Rate limiting data structures.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class RateLimitPolicy:
    """Request budget per fixed window."""

    requests: int
    window_ms: int

    def __post_init__(self):
        if self.requests < 1:
            raise ValueError("requests must be positive")
        if self.window_ms < 1:
            raise ValueError("window_ms must be positive")


@dataclass
class RateLimitRecord:
    """Counter state for one limiter key."""

    count: int
    window_start: int

    def expired(self, now_ms: int, window_ms: int) -> bool:
        return now_ms > self.window_start + window_ms


@dataclass(frozen=True)
class RateLimitVerdict:
    """Admission decision derived from a record on every check."""

    allowed: bool
    remaining: int
    reset_at: int
    limit: int

    def headers(self) -> Dict[str, str]:
        """Standard rate limit headers for this verdict."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
