"""Chunked execution: split items into batches and process batches concurrently."""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from .base import BatchFunc, TaskResult, TInput, TOutput
from .core import DEFAULT_BATCH_SIZE, CancellationToken, PoolConfig
from .errors import MissingOutputError
from .parallel import worker_pool

logger = logging.getLogger(__name__)

# Placeholder for a chunk position the batch function produced nothing for
_MISSING = object()


def get_optimal_batch_size(total_items: int, max_per_batch: int) -> int:
    """
    Pick a batch size in ``[1, max_per_batch]`` for ``total_items`` items.

    - ``max_per_batch <= 0`` means "no preference": ``DEFAULT_BATCH_SIZE`` is used
      as the maximum.
    - If everything fits in one batch, that batch is exactly ``total_items``.
    - Otherwise the largest divisor of ``total_items`` that is at least half of
      the maximum is preferred, so every batch has the same size; when there is
      none, the maximum itself is used and the last batch is shorter.

    Never returns 0. Deterministic for identical inputs.

    Example:
        >>> get_optimal_batch_size(10_000, 200)
        200
        >>> get_optimal_batch_size(100, 30)
        25
        >>> get_optimal_batch_size(97, 30)
        30
    """
    if max_per_batch <= 0:
        max_per_batch = DEFAULT_BATCH_SIZE

    if total_items <= max_per_batch:
        return max(1, total_items)

    # Tiny divisors would trade one short tail batch for many small calls
    floor = max(2, (max_per_batch + 1) // 2)
    for size in range(max_per_batch, floor - 1, -1):
        if total_items % size == 0:
            return size

    return max_per_batch


def split_batches(items: Sequence[TInput], batch_size: int) -> list[list[TInput]]:
    """Split ``items`` into consecutive chunks of at most ``batch_size`` items."""
    if batch_size <= 0:
        raise ValueError(
            f"batch_size must be > 0 (got {batch_size}). "
            f"Use get_optimal_batch_size() to pick one."
        )
    return [list(items[start : start + batch_size]) for start in range(0, len(items), batch_size)]


def batch(
    token: CancellationToken | None,
    items: Iterable[TInput],
    batch_size: int,
    batch_fn: BatchFunc[TInput, TOutput],
    config: PoolConfig | None = None,
) -> list[TaskResult[TInput, TOutput]]:
    """
    Process ``items`` in chunks of ``batch_size``, several chunks at a time.

    ``batch_fn(token, chunk)`` is called once per chunk and returns one output per
    chunk item, positionally. It may:

    - raise, failing every item of that chunk with the same error;
    - return fewer outputs than items, failing the trailing items with
      ``MissingOutputError``;
    - return ``TaskResult`` elements (typically from a nested ``worker_pool``
      call), whose output or error is carried over to the chunk item at the
      element's ``index``, so nested unordered pools are safe. Items whose
      index is missing or duplicated fail with ``MissingOutputError``.

    Sibling chunks are never affected by a failing chunk.

    Args:
        token: Shared cancellation token (None = never cancelled)
        items: Inputs to process
        batch_size: Maximum items per chunk (must be > 0)
        batch_fn: Chunk processing function
        config: Pool configuration; ``workers`` bounds the chunks in flight and
            a rate limit applies per chunk

    Returns:
        Exactly one TaskResult per item (not per chunk). ``index`` is the item's
        original position. Ordered mode returns items in input order; unordered
        mode returns whole chunks in completion order.
    """
    config = config or PoolConfig()
    config.validate()
    items = list(items)
    chunks = split_batches(items, batch_size)
    if not chunks:
        return []

    logger.debug(f"ℹ️  Processing {len(items)} items in {len(chunks)} batches of <= {batch_size}")

    def run_chunk(tok: CancellationToken, chunk: list[TInput]) -> list[Any]:
        outputs = batch_fn(tok, chunk)
        return list(outputs) if outputs is not None else []

    chunk_results = worker_pool(token, chunks, run_chunk, config)

    results: list[TaskResult[TInput, TOutput]] = []
    for chunk_result in chunk_results:
        results.extend(_flatten_chunk(chunk_result, batch_size))
    return results


def _place_outputs(outputs: list[Any], size: int, start: int) -> list[Any]:
    """
    Line outputs up with chunk positions.

    ``TaskResult`` outputs are placed by their own ``index``, since a nested
    unordered pool returns them in completion order. Anything else is
    positional. Unfilled slots hold ``_MISSING``.
    """
    slots: list[Any] = [_MISSING] * size

    if outputs and all(isinstance(output, TaskResult) for output in outputs):
        duplicates: set[int] = set()
        ignored = 0
        for output in outputs:
            position = output.index
            if not 0 <= position < size:
                ignored += 1
            elif position in duplicates or slots[position] is not _MISSING:
                duplicates.add(position)
            else:
                slots[position] = output
        for position in duplicates:
            slots[position] = _MISSING
        if ignored or duplicates:
            logger.warning(
                f"⚠️  Batch at index {start} returned {ignored} result(s) with an index "
                f"outside the chunk and {len(duplicates)} duplicated index(es); "
                f"affected items marked failed"
            )
        return slots

    if len(outputs) > size:
        logger.warning(
            f"⚠️  Batch at index {start} returned {len(outputs)} outputs for "
            f"{size} items; extra outputs ignored"
        )
    elif len(outputs) < size:
        logger.warning(
            f"⚠️  Batch at index {start} returned {len(outputs)} outputs for "
            f"{size} items; {size - len(outputs)} item(s) marked failed"
        )
    for position, output in enumerate(outputs[:size]):
        slots[position] = output
    return slots


def _flatten_chunk(
    chunk_result: TaskResult[list[TInput], list[Any]], batch_size: int
) -> list[TaskResult[TInput, TOutput]]:
    """Turn one chunk outcome into one TaskResult per chunk item."""
    chunk = chunk_result.input
    start = chunk_result.index * batch_size

    if chunk_result.error is not None:
        return [
            TaskResult(index=start + offset, input=item, error=chunk_result.error)
            for offset, item in enumerate(chunk)
        ]

    outputs = chunk_result.output or []
    slots = _place_outputs(outputs, len(chunk), start)

    flattened: list[TaskResult[TInput, TOutput]] = []
    for offset, (item, output) in enumerate(zip(chunk, slots)):
        index = start + offset
        if output is _MISSING:
            flattened.append(
                TaskResult(
                    index=index,
                    input=item,
                    error=MissingOutputError(index, len(chunk), len(outputs)),
                )
            )
        elif isinstance(output, TaskResult):
            flattened.append(
                TaskResult(index=index, input=item, output=output.output, error=output.error)
            )
        else:
            flattened.append(TaskResult(index=index, input=item, output=output))
    return flattened
