"""Configuration for pool, for-each and batch calls."""

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..strategies.rate_limit import RateLimiter

# Defaults live here and nowhere else
DEFAULT_WORKERS = 5
DEFAULT_BUFFER_SIZE = 10
DEFAULT_BATCH_SIZE = 10
DEFAULT_PROGRESS_INTERVAL = 10

# Type alias for progress callback function (completed, total, index)
ProgressCallbackFunc = Callable[[int, int, int], None]


@dataclass(frozen=True)
class PoolConfig:
    """
    Immutable settings for one ``worker_pool``/``for_each``/``batch`` call.

    Attributes:
        workers: Number of concurrent workers (for ``batch``: chunks in flight)
        buffer_size: Bound of the internal work queue (0 = unbounded)
        rate_per_second: Admissions per second for a limiter owned by the call
        rate_burst: Bucket capacity of the call-owned limiter (default 1)
        rate_limiter: Externally owned limiter shared across calls; takes
            precedence over ``rate_per_second`` and is never stopped by the pool
        ordered: Return results in input order (True) or completion order (False)
        progress_interval: Invoke ``progress_callback`` every N completions
        progress_callback: Optional callback(completed, total, index)
    """

    workers: int = DEFAULT_WORKERS
    buffer_size: int = DEFAULT_BUFFER_SIZE
    rate_per_second: float | None = None
    rate_burst: int | None = None
    rate_limiter: "RateLimiter | None" = None
    ordered: bool = True
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    progress_callback: ProgressCallbackFunc | None = None

    def validate(self) -> None:
        """Validate configuration."""
        if self.workers < 1:
            raise ValueError(
                f"workers must be >= 1 (got {self.workers}). "
                f"Set config.workers to a positive integer (typical for API calls: 5-50)."
            )
        if self.buffer_size < 0:
            raise ValueError(
                f"buffer_size must be >= 0 (got {self.buffer_size}). "
                f"Set config.buffer_size to 0 for unbounded, or a positive queue bound."
            )
        if self.rate_per_second is not None and self.rate_per_second <= 0:
            raise ValueError(
                f"rate_per_second must be > 0 (got {self.rate_per_second}). "
                f"Set config.rate_per_second to None to disable rate limiting."
            )
        if self.rate_burst is not None and self.rate_burst < 1:
            raise ValueError(
                f"rate_burst must be >= 1 (got {self.rate_burst}). "
                f"Set config.rate_burst to None for the default burst of 1."
            )
        if self.progress_interval < 1:
            raise ValueError(
                f"progress_interval must be >= 1 (got {self.progress_interval}). "
                f"Set config.progress_interval to a positive integer."
            )

    @property
    def rate_limited(self) -> bool:
        """Whether units of this call wait on a rate limiter."""
        return self.rate_limiter is not None or self.rate_per_second is not None

    def with_options(self, **changes: Any) -> "PoolConfig":
        """Return a copy with ``changes`` applied (the original is unchanged)."""
        return replace(self, **changes)
