"""Example usage of the batch_exec module.

Simulates validating a few hundred accounts against a rate-limited API:
a worker pool with a shared rate limiter, a circuit breaker around the
downstream call, a deadline and result summaries.
"""

import logging
import random
import time
from typing import Annotated

from pydantic import BaseModel, Field

from batch_exec import (
    CancellationToken,
    CircuitBreaker,
    PoolConfig,
    RateLimiter,
    ResultSummary,
    fetch_map,
    worker_pool,
)
from batch_exec.errors import BulkOperationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)


class AccountStatus(BaseModel):
    """Validation outcome for one account."""

    account_id: Annotated[str, Field(description="Account identifier")]
    active: Annotated[bool, Field(description="Whether the account may transact")]
    balance: Annotated[int, Field(description="Available balance in cents")]


def validate_account(token: CancellationToken, account_id: str) -> AccountStatus:
    """Stand-in for an API call: ~20ms latency, occasional failures."""
    if token.wait(random.uniform(0.01, 0.03)):
        token.raise_if_cancelled()
    if random.random() < 0.05:
        raise ConnectionError(f"timeout validating {account_id}")
    return AccountStatus(account_id=account_id, active=True, balance=random.randint(0, 10_000))


def example_worker_pool():
    """Validate accounts with 20 workers, 200 calls/sec and a 30s deadline."""
    account_ids = [f"acc-{i:04d}" for i in range(300)]

    with RateLimiter(rate_per_second=200, burst=20) as limiter:
        breaker = CircuitBreaker(failure_threshold=25, open_timeout=2.0, name="accounts-api")
        config = PoolConfig(workers=20, rate_limiter=limiter, progress_interval=50)

        with CancellationToken(timeout=30.0) as token:
            start = time.perf_counter()
            results = worker_pool(token, account_ids, breaker.wrap(validate_account), config)
            elapsed = time.perf_counter() - start

    summary = ResultSummary.from_results(results)
    print(f"\nValidated {summary.total} accounts in {elapsed:.2f}s")
    print(f"  Succeeded: {summary.succeeded}, Failed: {summary.failed}")
    print(f"  Errors: {summary.error_counts}")


def example_unordered_correlation():
    """Unordered delivery: correlate results with per-index options by index."""
    account_ids = [f"acc-{i:04d}" for i in range(20)]
    options = [{"priority": i % 3} for i in range(len(account_ids))]

    results = worker_pool(
        None, account_ids, validate_account, PoolConfig(workers=5, ordered=False)
    )

    for result in results[:5]:
        priority = options[result.index]["priority"]
        print(f"  #{result.index} {result.input} priority={priority} ok={result.success}")


def example_fetch_map():
    """Fetch a lookup table, keeping what succeeded if some fetches fail."""
    account_ids = [f"acc-{i:04d}" for i in range(50)]
    try:
        accounts = fetch_map(None, validate_account, account_ids, PoolConfig(workers=10))
    except BulkOperationError as e:
        accounts = e.partial
        print(f"  {len(e.errors)} fetches failed, first: {e.first}")
    print(f"  Loaded {len(accounts)} accounts")


if __name__ == "__main__":
    example_worker_pool()
    print("\nUnordered results:")
    example_unordered_correlation()
    print("\nLookup table:")
    example_fetch_map()
