"""Circuit breaker and rate limiter consulted by the loop driver."""

from agent_loop.guards.circuit_breaker import CircuitBreaker, detect_progress, fingerprint_error
from agent_loop.guards.rate_limiter import RateLimiter, window_start_for

__all__ = [
    "CircuitBreaker",
    "RateLimiter",
    "detect_progress",
    "fingerprint_error",
    "window_start_for",
]
