"""Request rate limiting."""

from yieldfarm.services.security.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
)

__all__ = [
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiter",
]
