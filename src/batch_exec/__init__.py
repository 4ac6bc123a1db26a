"""Concurrent task execution for large collections of independent operations.

This package runs many independent, usually I/O-bound operations (API calls,
bulk updates) with bounded parallelism, optional rate limiting, cooperative
cancellation and per-item failure isolation.

Key features:
- ``worker_pool``: bounded worker threads, one ``TaskResult`` per input
- ``for_each``: side-effecting variant returning the first error
- ``batch``: chunked execution with concurrent chunks
- ``RateLimiter``: token bucket shareable across calls and threads
- ``CircuitBreaker``: fail fast while a dependency is down
- Awaitable variants for asyncio callers

Example:
    >>> from batch_exec import CancellationToken, PoolConfig, worker_pool
    >>>
    >>> token = CancellationToken(timeout=60.0)
    >>> config = PoolConfig(workers=20, rate_per_second=100)
    >>> results = worker_pool(token, account_ids, fetch_account, config)
    >>> for result in results:
    ...     if not result.success:
    ...         print(result.index, result.error)
"""

# Core classes
from .base import (
    BatchFunc,
    ForEachFunc,
    ResultSummary,
    TaskResult,
    WorkFunc,
    collect_outputs,
    first_error,
)

# Async entry points
from .aio import abatch, afor_each, aworker_pool

# Batching
from .batching import batch, get_optimal_batch_size, split_batches

# Configuration and cancellation
from .core import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_WORKERS,
    CancellationToken,
    PoolConfig,
    ProgressCallbackFunc,
)

# Errors
from .errors import (
    BatchExecError,
    BulkOperationError,
    CancellationError,
    CircuitOpenError,
    DeadlineExceededError,
    MissingOutputError,
    RateLimitError,
)

# Helpers
from .helpers import batch_collect, fetch_map, process_in_parallel, run_concurrent

# Worker pool
from .parallel import for_each, worker_pool

# Admission strategies
from .strategies import CircuitBreaker, CircuitState, RateLimiter

__all__ = [
    # Core
    "TaskResult",
    "ResultSummary",
    "WorkFunc",
    "ForEachFunc",
    "BatchFunc",
    "first_error",
    "collect_outputs",
    # Configuration
    "PoolConfig",
    "ProgressCallbackFunc",
    "CancellationToken",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_WORKERS",
    # Execution
    "worker_pool",
    "for_each",
    "batch",
    "split_batches",
    "get_optimal_batch_size",
    "aworker_pool",
    "afor_each",
    "abatch",
    # Helpers
    "fetch_map",
    "batch_collect",
    "process_in_parallel",
    "run_concurrent",
    # Strategies
    "RateLimiter",
    "CircuitBreaker",
    "CircuitState",
    # Errors
    "BatchExecError",
    "CancellationError",
    "DeadlineExceededError",
    "RateLimitError",
    "CircuitOpenError",
    "MissingOutputError",
    "BulkOperationError",
]

__version__ = "0.1.0"
