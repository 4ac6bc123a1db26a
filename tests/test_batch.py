"""Tests for batch and get_optimal_batch_size."""

import pytest

from batch_exec import (
    CancellationError,
    CancellationToken,
    MissingOutputError,
    PoolConfig,
    TaskResult,
    batch,
    get_optimal_batch_size,
    split_batches,
    worker_pool,
)
from batch_exec.testing import MockBatchFunction, MockWorkError, MockWorkFunction


def test_chunk_sizes():
    """batch_size=3 over 7 items gives chunks of 3, 3 and 1."""

    batch_fn = MockBatchFunction(response_factory=lambda item: item * 2)

    results = batch(None, range(7), 3, batch_fn, PoolConfig(workers=1))

    assert batch_fn.chunk_sizes == [3, 3, 1]
    assert len(results) == 7
    assert [r.index for r in results] == list(range(7))
    assert [r.output for r in results] == [x * 2 for x in range(7)]


def test_split_batches_covers_every_index_once():
    """Chunks are contiguous, non-overlapping and cover [0, N)."""

    for total in range(0, 30):
        for size in range(1, 8):
            chunks = split_batches(list(range(total)), size)
            flattened = [item for chunk in chunks for item in chunk]
            assert flattened == list(range(total))
            assert all(1 <= len(chunk) <= size for chunk in chunks)
            assert len(chunks) == -(-total // size)


def test_invalid_batch_size():
    """batch_size must be positive."""

    with pytest.raises(ValueError, match="batch_size must be > 0"):
        batch(None, range(3), 0, MockBatchFunction())


def test_empty_items():
    """No items means no chunks and no calls."""

    batch_fn = MockBatchFunction()

    assert batch(None, [], 5, batch_fn) == []
    assert batch_fn.chunks == []


def test_chunk_error_applies_to_its_items_only():
    """A raising chunk fails exactly its own item range."""

    batch_fn = MockBatchFunction(fail_chunks={3})

    results = batch(None, range(9), 3, batch_fn, PoolConfig(workers=3))

    assert len(results) == 9
    for result in results:
        if result.index in (3, 4, 5):
            assert isinstance(result.error, MockWorkError)
        else:
            assert result.success
            assert result.output == result.index


def test_short_output_marks_trailing_items():
    """Fewer outputs than inputs fail the items without an output."""

    batch_fn = MockBatchFunction(truncate={0: 1})

    results = batch(None, range(6), 3, batch_fn, PoolConfig(workers=2))

    assert results[0].success and results[0].output == 0
    for index in (1, 2):
        assert isinstance(results[index].error, MissingOutputError)
        assert results[index].error.index == index
    assert all(r.success for r in results[3:])


def test_extra_outputs_are_ignored():
    """More outputs than inputs never create extra results."""

    def batch_fn(tok, chunk):
        return list(chunk) + ["extra"]

    results = batch(None, range(5), 2, batch_fn)

    assert len(results) == 5
    assert [r.output for r in results] == list(range(5))


def test_none_output_fails_chunk_items():
    """A batch function returning None leaves every item without output."""

    results = batch(None, range(4), 2, lambda tok, chunk: None)

    assert all(isinstance(r.error, MissingOutputError) for r in results)


def test_nested_worker_pool_results_are_unwrapped():
    """Chunks processed with a nested pool keep item-level outcomes."""

    work = MockWorkFunction(response_factory=lambda item: f"tx-{item}", fail_on={4})

    def process_chunk(tok, chunk):
        return worker_pool(tok, chunk, work, PoolConfig(workers=2))

    results = batch(None, range(10), 4, process_chunk, PoolConfig(workers=2))

    assert len(results) == 10
    assert isinstance(results[4].error, MockWorkError)
    for result in results:
        if result.index != 4:
            assert result.output == f"tx-{result.index}"
    assert work.call_count == 10


def test_cancelled_batch_never_calls_batch_fn():
    """Chunks not started when cancelled fail every item with CancellationError."""

    token = CancellationToken()
    token.cancel()
    batch_fn = MockBatchFunction()

    results = batch(token, range(7), 3, batch_fn)

    assert len(results) == 7
    assert all(isinstance(r.error, CancellationError) for r in results)
    assert batch_fn.chunks == []


def test_unordered_batch_covers_every_item():
    """Unordered delivery returns whole chunks in completion order."""

    batch_fn = MockBatchFunction(latency=0.005)

    results = batch(None, range(23), 5, batch_fn, PoolConfig(workers=3, ordered=False))

    assert sorted(r.index for r in results) == list(range(23))
    assert all(r.input == r.index for r in results)


@pytest.mark.parametrize(
    ("total", "maximum", "expected"),
    [
        (7, 3, 3),
        (1000, 100, 100),
        (10_000, 200, 200),
        (100, 30, 25),
        (97, 30, 30),
        (50, 100, 50),
        (100, 100, 100),
        (1, 10, 1),
        (5, 1, 1),
    ],
)
def test_optimal_batch_size_examples(total, maximum, expected):
    """Known sizing decisions."""

    assert get_optimal_batch_size(total, maximum) == expected


def test_optimal_batch_size_without_maximum_uses_default():
    """A non-positive maximum falls back to DEFAULT_BATCH_SIZE."""

    from batch_exec import DEFAULT_BATCH_SIZE

    assert get_optimal_batch_size(1000, 0) == DEFAULT_BATCH_SIZE
    assert get_optimal_batch_size(1000, -5) == DEFAULT_BATCH_SIZE
    assert get_optimal_batch_size(3, 0) == 3


def test_optimal_batch_size_bounds():
    """Result is always in [1, maximum] and never 0 for positive totals."""

    for total in range(1, 300):
        for maximum in range(1, 40):
            size = get_optimal_batch_size(total, maximum)
            assert 1 <= size <= maximum
            assert size == get_optimal_batch_size(total, maximum)
            # Never degenerates into tiny batches when a large size is allowed
            assert size >= min(total, (maximum + 1) // 2)


def test_nested_unordered_pool_results_match_their_items():
    """Nested unordered pools return completion order; items still get their own outputs."""

    def slow_first(tok, item):
        if item % 4 == 0:
            tok.wait(0.05)
        return f"tx-{item}"

    def process_chunk(tok, chunk):
        return worker_pool(tok, chunk, slow_first, PoolConfig(workers=4, ordered=False))

    results = batch(None, range(8), 4, process_chunk, PoolConfig(workers=2))

    assert [(r.index, r.input, r.output) for r in results] == [
        (i, i, f"tx-{i}") for i in range(8)
    ]


def test_task_results_with_bad_indexes_fail_their_items():
    """Out-of-range or duplicated result indexes leave those items without output."""

    def process_chunk(tok, chunk):
        return [
            TaskResult(index=2, input=chunk[2], output="c"),
            TaskResult(index=0, input=chunk[0], output="a"),
            TaskResult(index=0, input=chunk[0], output="a-again"),
            TaskResult(index=7, input=None, output="stray"),
        ]

    results = batch(None, range(3), 3, process_chunk)

    assert isinstance(results[0].error, MissingOutputError)
    assert isinstance(results[1].error, MissingOutputError)
    assert results[2].success and results[2].output == "c"


def test_invalid_config_rejected_for_empty_items():
    """An invalid config raises even when there is nothing to process."""

    batch_fn = MockBatchFunction()

    with pytest.raises(ValueError, match="workers must be >= 1"):
        batch(None, [], 3, batch_fn, PoolConfig(workers=0))
    assert batch_fn.chunks == []
