"""Ready-made patterns built on ``worker_pool`` and ``batch``."""

import logging
import threading
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import replace
from typing import TypeVar

from .base import BatchFunc, TInput, TOutput, WorkFunc, collect_outputs
from .batching import batch
from .core import CancellationToken, PoolConfig, ensure_token
from .errors import BulkOperationError
from .parallel import worker_pool

logger = logging.getLogger(__name__)

TKey = TypeVar("TKey", bound=Hashable)
TValue = TypeVar("TValue")


def fetch_map(
    token: CancellationToken | None,
    fetch_fn: WorkFunc[TKey, TValue],
    keys: Iterable[TKey],
    config: PoolConfig | None = None,
) -> dict[TKey, TValue]:
    """
    Fetch every key concurrently and return ``{key: value}``.

    Duplicate keys are fetched once per occurrence; the last value wins.

    Raises:
        BulkOperationError: If any fetch failed. ``errors`` maps each failed key to
            its error and ``partial`` holds every key that was fetched.

    Example:
        >>> accounts = fetch_map(token, client.get_account, account_ids,
        ...                      PoolConfig(workers=20, ordered=False))
    """
    results = worker_pool(token, keys, fetch_fn, config)

    fetched: dict[TKey, TValue] = {}
    errors: dict[TKey, BaseException] = {}
    for result in sorted(results, key=lambda r: r.index):
        if result.error is not None:
            errors[result.input] = result.error
        else:
            fetched[result.input] = result.output  # type: ignore[assignment]

    if errors:
        logger.warning(f"⚠️  {len(errors)}/{len(results)} fetches failed")
        raise BulkOperationError(errors, partial=fetched)
    return fetched


def batch_collect(
    token: CancellationToken | None,
    items: Iterable[TInput],
    batch_size: int,
    batch_fn: BatchFunc[TInput, TOutput],
    config: PoolConfig | None = None,
) -> list[TOutput]:
    """
    Run ``batch`` and return the outputs in input order.

    Raises:
        BulkOperationError: If any item failed; ``partial`` holds the outputs of
            the items that succeeded, in input order.
    """
    return collect_outputs(batch(token, items, batch_size, batch_fn, config))


def process_in_parallel(
    token: CancellationToken | None,
    fn: WorkFunc[TInput, TOutput],
    items: Iterable[TInput],
    config: PoolConfig | None = None,
) -> tuple[list[TOutput | None], list[BaseException | None]]:
    """
    Run ``fn`` over ``items`` and return ``(outputs, errors)``.

    Both lists are aligned with ``items`` whatever ``config.ordered`` says;
    ``outputs[i]`` is None where ``errors[i]`` is set.
    """
    config = replace(config or PoolConfig(), ordered=True)
    results = worker_pool(token, items, fn, config)
    return [r.output for r in results], [r.error for r in results]


def run_concurrent(
    token: CancellationToken | None,
    operations: Sequence[Callable[[CancellationToken], object]],
) -> list[BaseException | None]:
    """
    Start every operation on its own thread and wait for all of them.

    Meant for a handful of heterogeneous tasks (e.g. warming several caches at
    once); use ``worker_pool`` to bound concurrency over large collections.

    Returns:
        One entry per operation: the exception it raised, or None
    """
    token = ensure_token(token)
    errors: list[BaseException | None] = [None] * len(operations)

    def run(index: int, operation: Callable[[CancellationToken], object]) -> None:
        try:
            operation(token)
        except Exception as e:
            logger.debug(f"✗ Operation {index} failed: {type(e).__name__}: {e}")
            errors[index] = e

    threads = [
        threading.Thread(target=run, args=(index, operation), name=f"batch-exec-op-{index}")
        for index, operation in enumerate(operations)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors
