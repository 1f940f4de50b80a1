"""Per-client request limiting with sliding windows."""

import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from yieldfarm.core.config import Settings
from yieldfarm.core.exceptions import RateLimitExceeded


class RateLimitConfig(BaseModel):
    """Rate limit configuration."""

    requests_per_minute: int = Field(default=100, ge=1, description="Requests per minute")
    requests_per_hour: int = Field(default=1000, ge=1, description="Requests per hour")
    enabled: bool = Field(default=True, description="Enable rate limiting")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitConfig":
        return cls(
            requests_per_minute=settings.rate_limit_per_minute,
            requests_per_hour=settings.rate_limit_per_hour,
            enabled=settings.rate_limit_enabled,
        )


class RateLimitResult(BaseModel):
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: float | None = None


@dataclass
class SlidingWindow:
    """Timestamps of accepted requests within the last ``size`` seconds."""

    size: float
    max_requests: int
    hits: deque[float] = field(default_factory=deque)

    def _evict(self, now: float) -> None:
        while self.hits and self.hits[0] <= now - self.size:
            self.hits.popleft()

    def has_room(self, now: float) -> bool:
        self._evict(now)
        return len(self.hits) < self.max_requests

    def record(self, now: float) -> None:
        self.hits.append(now)

    def remaining(self, now: float) -> int:
        self._evict(now)
        return max(0, self.max_requests - len(self.hits))

    def retry_after(self, now: float) -> float:
        self._evict(now)
        if not self.hits:
            return 0.0
        return max(0.0, self.hits[0] + self.size - now)


class RateLimiter:
    """Rejects clients that exceed any of their configured windows."""

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            config: Rate limit configuration
            clock: Monotonic time source in seconds
        """
        self.config = config if config is not None else RateLimitConfig()
        self._clock = clock
        self._windows: dict[str, tuple[SlidingWindow, ...]] = {}

    def _get_windows(self, key: str) -> tuple[SlidingWindow, ...]:
        if key not in self._windows:
            self._windows[key] = (
                SlidingWindow(size=60, max_requests=self.config.requests_per_minute),
                SlidingWindow(size=3600, max_requests=self.config.requests_per_hour),
            )
        return self._windows[key]

    def check(self, key: str) -> RateLimitResult:
        """Count a request from ``key`` if every window has room.

        Args:
            key: Client identifier (IP address)

        Returns:
            Whether the request is allowed
        """
        if not self.config.enabled:
            return RateLimitResult(
                allowed=True,
                limit=self.config.requests_per_minute,
                remaining=self.config.requests_per_minute,
            )

        now = self._clock()
        windows = self._get_windows(key)
        for window in windows:
            if not window.has_room(now):
                return RateLimitResult(
                    allowed=False,
                    limit=window.max_requests,
                    remaining=0,
                    retry_after=window.retry_after(now),
                )

        for window in windows:
            window.record(now)
        return RateLimitResult(
            allowed=True,
            limit=windows[0].max_requests,
            remaining=min(w.remaining(now) for w in windows),
        )

    def enforce(self, key: str) -> RateLimitResult:
        """Like ``check`` but raises when the request is rejected.

        Raises:
            RateLimitExceeded: If any window is full
        """
        result = self.check(key)
        if not result.allowed:
            raise RateLimitExceeded(
                result.retry_after or 0.0, limit=result.limit, remaining=result.remaining
            )
        return result

    def reset(self, key: str | None = None) -> None:
        """Forget one client, or every client when ``key`` is None."""
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)
