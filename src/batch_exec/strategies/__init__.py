"""Admission strategies: rate limiting and circuit breaking."""

from .circuit_breaker import CircuitBreaker, CircuitState
from .rate_limit import RateLimiter

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "RateLimiter",
]
