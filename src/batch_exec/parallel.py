"""Bounded worker pool and for-each over a sequence of independent inputs"""

import logging
import queue
import threading
import time
from collections.abc import Iterable
from typing import Any, Generic

from .base import ForEachFunc, TaskResult, TInput, TOutput, WorkFunc, first_error
from .core import CancellationToken, PoolConfig, ensure_token
from .errors import BatchExecError, CancellationError
from .strategies import RateLimiter

logger = logging.getLogger(__name__)

# Seconds between liveness checks while the feeder waits on a full queue
_FEED_POLL_INTERVAL = 0.1


class _PoolRun(Generic[TInput, TOutput]):
    """
    State of one ``worker_pool`` call.

    Everything mutable lives here, so concurrent calls never share state except
    an explicitly shared ``RateLimiter``.
    """

    def __init__(
        self,
        token: CancellationToken,
        items: list[TInput],
        work_fn: WorkFunc[TInput, TOutput],
        config: PoolConfig,
    ):
        self.token = token
        self.items = items
        self.work_fn = work_fn
        self.config = config
        self.total = len(items)

        self._queue: queue.Queue[tuple[int, TInput] | None] = queue.Queue(
            maxsize=config.buffer_size
        )
        self._results: list[TaskResult[TInput, TOutput] | None] = [None] * self.total
        self._completion_order: list[int] = []
        self._results_lock = threading.Lock()
        self._completed = 0
        self._succeeded = 0
        self._failed = 0
        self._start_time = 0.0

        self._limiter: RateLimiter | None = None
        self._owns_limiter = False

    def run(self) -> list[TaskResult[TInput, TOutput]]:
        """Process every item and return one result per item."""
        self._start_time = time.monotonic()
        self._setup_rate_limiter()

        worker_count = min(self.config.workers, self.total)
        workers = [
            threading.Thread(
                target=self._worker,
                args=(worker_id,),
                name=f"batch-exec-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(worker_count)
        ]
        logger.debug(
            f"ℹ️  Starting {worker_count} workers for {self.total} items "
            f"(ordered={self.config.ordered}, rate_limited={self._limiter is not None})"
        )

        try:
            for worker in workers:
                worker.start()

            for index, item in enumerate(self.items):
                if not self._feed((index, item), workers):
                    break
            # One sentinel per worker unblocks them once the queue drains
            for _ in workers:
                if not self._feed(None, workers):
                    break

            for worker in workers:
                worker.join()
        finally:
            if self._owns_limiter and self._limiter is not None:
                self._limiter.stop()

        results = self._assemble()

        elapsed = time.monotonic() - self._start_time
        logger.info(
            f"✓ Pool finished {self.total} items in {elapsed:.2f}s | "
            f"Succeeded: {self._succeeded}, Failed: {self._failed}"
        )
        return results

    def _setup_rate_limiter(self) -> None:
        if self.config.rate_limiter is not None:
            self._limiter = self.config.rate_limiter
        elif self.config.rate_per_second is not None:
            self._limiter = RateLimiter(
                self.config.rate_per_second, burst=self.config.rate_burst or 1
            )
            self._owns_limiter = True

    def _feed(self, entry: tuple[int, TInput] | None, workers: list[threading.Thread]) -> bool:
        """Put ``entry`` on the queue; False if every worker has died."""
        while True:
            try:
                self._queue.put(entry, timeout=_FEED_POLL_INTERVAL)
                return True
            except queue.Full:
                if not any(worker.is_alive() for worker in workers):
                    logger.error("✗ All workers exited unexpectedly; remaining items not started")
                    return False

    def _worker(self, worker_id: int) -> None:
        """Worker loop: claim the next input until a sentinel arrives."""
        logger.debug(f"✓ Worker {worker_id} started and waiting for work")

        while True:
            entry = self._queue.get()
            if entry is None:  # Sentinel value
                logger.debug(f"✓ Worker {worker_id} finished (no more work)")
                return

            index, item = entry
            result = self._process_item(index, item, worker_id)
            self._record(result)

    def _process_item(
        self, index: int, item: TInput, worker_id: int
    ) -> TaskResult[TInput, TOutput]:
        """Run one unit; every outcome becomes a TaskResult."""
        cancel_error = self.token.error()
        if cancel_error is not None:
            return TaskResult(index=index, input=item, error=cancel_error)

        if self._limiter is not None:
            try:
                self._limiter.wait(self.token)
            except BatchExecError as e:
                logger.debug(f"[Worker {worker_id}] Item {index} not admitted: {e}")
                return TaskResult(index=index, input=item, error=e)

            cancel_error = self.token.error()
            if cancel_error is not None:
                return TaskResult(index=index, input=item, error=cancel_error)

        try:
            output = self.work_fn(self.token, item)
        except Exception as e:
            logger.debug(
                f"✗ [Worker {worker_id}] Item {index} failed: {type(e).__name__}: {str(e)[:200]}"
            )
            return TaskResult(index=index, input=item, error=e)

        return TaskResult(index=index, input=item, output=output)

    def _record(self, result: TaskResult[TInput, TOutput]) -> None:
        """Store a result and report progress (thread-safe)."""
        should_report = False
        with self._results_lock:
            self._results[result.index] = result
            self._completion_order.append(result.index)
            self._completed += 1
            if result.error is None:
                self._succeeded += 1
            else:
                self._failed += 1
            completed = self._completed
            if completed % self.config.progress_interval == 0:
                should_report = True
                succeeded, failed = self._succeeded, self._failed

        # Report outside of lock
        if should_report:
            self._log_progress(completed, succeeded, failed)
            self._run_progress_callback(completed, result.index)

    def _log_progress(self, completed: int, succeeded: int, failed: int) -> None:
        elapsed = time.monotonic() - self._start_time
        calls_per_sec = completed / elapsed if elapsed > 0 else 0
        logger.info(
            f"ℹ️  Progress: {completed}/{self.total} "
            f"({completed / self.total * 100:.1f}%) | "
            f"Succeeded: {succeeded}, Failed: {failed} | {calls_per_sec:.2f} calls/sec"
        )

    def _run_progress_callback(self, completed: int, index: int) -> None:
        if self.config.progress_callback is None:
            return
        try:
            self.config.progress_callback(completed, self.total, index)
        except Exception as e:
            logger.warning(f"⚠️  Progress callback failed: {type(e).__name__}: {e}")

    def _assemble(self) -> list[TaskResult[TInput, TOutput]]:
        """Build the returned sequence; an input without a result is filled in."""
        missing = [i for i, r in enumerate(self._results) if r is None]
        for index in missing:
            self._results[index] = TaskResult(
                index=index,
                input=self.items[index],
                error=self.token.error()
                or CancellationError("worker exited before processing item"),
            )
        if missing:
            logger.warning(f"⚠️  {len(missing)} item(s) never reached a worker")

        if self.config.ordered:
            return self._results  # type: ignore[return-value]
        return [self._results[i] for i in self._completion_order + missing]  # type: ignore[misc]


def worker_pool(
    token: CancellationToken | None,
    items: Iterable[TInput],
    work_fn: WorkFunc[TInput, TOutput],
    config: PoolConfig | None = None,
) -> list[TaskResult[TInput, TOutput]]:
    """
    Run ``work_fn`` over ``items`` with a bounded number of worker threads.

    Blocks until every item has a result. A failing item never affects its
    siblings: its exception is stored in its ``TaskResult``. Once ``token`` is
    cancelled, items not yet started get a ``CancellationError`` result without
    calling ``work_fn``; items already running see the same cancelled token.

    Args:
        token: Shared cancellation token (None = never cancelled)
        items: Inputs to process
        work_fn: Function called as ``work_fn(token, item)``; raising marks the
            item as failed
        config: Pool configuration (default: ``PoolConfig()``)

    Returns:
        Exactly one TaskResult per input. In ordered mode (the default)
        ``results[i].input is items[i]``; in unordered mode results are in
        completion order and must be correlated through ``TaskResult.index``.

    Example:
        >>> results = worker_pool(token, account_ids, fetch_account,
        ...                       PoolConfig(workers=25, rate_per_second=100))
        >>> failed = [r for r in results if not r.success]
    """
    config = config or PoolConfig()
    config.validate()
    token = ensure_token(token)
    items = list(items)
    if not items:
        return []
    return _PoolRun(token, items, work_fn, config).run()


def for_each(
    token: CancellationToken | None,
    items: Iterable[TInput],
    fn: ForEachFunc[TInput],
    config: PoolConfig | None = None,
) -> BaseException | None:
    """
    Run a side-effecting ``fn`` for every item and return the first error.

    Every item is attempted (or marked cancelled) before this returns; a failure
    does not stop the remaining items.

    Returns:
        The error of the lowest-index failed item, or None if all succeeded
    """

    def work(tok: CancellationToken, item: TInput) -> Any:
        fn(tok, item)
        return None

    return first_error(worker_pool(token, items, work, config))
