"""Token-bucket rate limiting shared across workers and calls."""

import logging
import math
import threading
import time

from ..core.cancellation import CancellationToken
from ..errors import RateLimitError

logger = logging.getLogger(__name__)

# Longest a waiter holding a cancellation token sleeps before re-checking stop()
_WAKE_SLICE = 0.05


class RateLimiter:
    """
    Token bucket: ``burst`` capacity, refilled continuously at ``rate_per_second``.

    The bucket starts full. Every ``wait()`` consumes exactly one token; token
    accounting happens under one lock so concurrent waiters never share a token.
    Waiters are not queued fairly: whichever waiter re-checks first after a
    refill wins.

    A limiter may be shared by any number of pools and threads; pass it through
    ``PoolConfig(rate_limiter=...)``.

    Example:
        >>> with RateLimiter(rate_per_second=100, burst=20) as limiter:
        ...     limiter.wait(token)
        ...     call_api()
    """

    def __init__(self, rate_per_second: float, burst: int | None = None):
        """
        Create a full bucket.

        Args:
            rate_per_second: Refill rate in tokens per second
            burst: Bucket capacity (default: one second worth of tokens, at least 1)
        """
        if rate_per_second <= 0:
            raise ValueError(
                f"rate_per_second must be > 0 (got {rate_per_second}). "
                f"Use a positive number of admissions per second."
            )
        if burst is None:
            burst = max(1, math.ceil(rate_per_second))
        if burst < 1:
            raise ValueError(
                f"burst must be >= 1 (got {burst}). "
                f"Use None for one second worth of tokens."
            )
        self.rate_per_second = float(rate_per_second)
        self.capacity = int(burst)
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._cond = threading.Condition(threading.Lock())
        self._stopped = False
        self._stop_event = threading.Event()

    def __enter__(self) -> "RateLimiter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def __repr__(self) -> str:
        return (
            f"RateLimiter(rate_per_second={self.rate_per_second}, burst={self.capacity}, "
            f"stopped={self._stopped})"
        )

    def _refill(self, now: float) -> None:
        # Caller holds the lock
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate_per_second)
            self._last_refill = now

    @property
    def available_tokens(self) -> float:
        """Snapshot of the tokens currently in the bucket (0 <= n <= capacity)."""
        with self._cond:
            self._refill(time.monotonic())
            return self._tokens

    @property
    def stopped(self) -> bool:
        return self._stopped

    def try_acquire(self) -> bool:
        """Consume a token if one is available right now; never blocks."""
        with self._cond:
            if self._stopped:
                return False
            self._refill(time.monotonic())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def wait(
        self,
        token: CancellationToken | None = None,
        max_wait: float | None = None,
    ) -> None:
        """
        Block until a token is granted, then consume it.

        Args:
            token: Cancellation token; checked before every attempt and used to
                wake the waiter early when it is cancelled
            max_wait: Optional bound in seconds; if the next token cannot be
                granted within it, fail instead of waiting

        Raises:
            CancellationError: The token was cancelled (or its deadline elapsed)
                before a token was granted
            RateLimitError: ``max_wait`` would be exceeded, or the limiter is stopped
        """
        started = time.monotonic()
        while True:
            if token is not None:
                token.raise_if_cancelled()

            with self._cond:
                if self._stopped:
                    raise RateLimitError("rate limiter stopped")
                now = time.monotonic()
                self._refill(now)
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                delay = (1.0 - self._tokens) / self.rate_per_second

                if max_wait is not None and (now - started) + delay > max_wait:
                    raise RateLimitError(
                        f"no token available within {max_wait:.3f}s "
                        f"(next token in {delay:.3f}s at {self.rate_per_second:g}/s)"
                    )

                if token is None:
                    # stop() notifies the condition, so stopped waiters wake at once
                    self._cond.wait(delay)
                    continue

            self._sleep(token, delay)

    def _sleep(self, token: CancellationToken, delay: float) -> None:
        """Sleep up to ``delay``, waking early on cancellation or stop()."""
        wake_at = time.monotonic() + delay
        while not self._stop_event.is_set():
            remaining = wake_at - time.monotonic()
            if remaining <= 0 or token.wait(min(remaining, _WAKE_SLICE)):
                return

    def stop(self) -> None:
        """Stop granting tokens and wake every waiter. Idempotent."""
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            self._stop_event.set()
            self._cond.notify_all()
        logger.debug(f"Rate limiter stopped ({self.rate_per_second:g}/s, burst {self.capacity})")
