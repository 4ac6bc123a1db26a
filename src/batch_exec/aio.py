"""Awaitable entry points for callers running inside an event loop.

Each coroutine runs the threaded call in ``asyncio.to_thread`` so the event
loop is never blocked. Cancelling the awaiting task cancels the call's token,
so workers stop starting new items and in-flight work sees the cancellation.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from .base import BatchFunc, ForEachFunc, TaskResult, TInput, TOutput, WorkFunc
from .batching import batch
from .core import CancellationToken, PoolConfig, ensure_token
from .parallel import for_each, worker_pool

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_cancellable(
    token: CancellationToken | None, call: Callable[[CancellationToken], T]
) -> T:
    # A child token lets task cancellation stop this call without touching the
    # caller's token
    call_token = ensure_token(token).child()
    thread_call = asyncio.ensure_future(asyncio.to_thread(call, call_token))
    try:
        return await asyncio.shield(thread_call)
    except asyncio.CancelledError:
        logger.info("⚠️  Awaiting task cancelled; cancelling in-flight work")
        call_token.cancel("awaiting task cancelled")
        # Let the worker threads observe the token and finish before propagating
        try:
            await thread_call
        except Exception as e:
            logger.debug(f"Cancelled call ended with {type(e).__name__}: {e}")
        raise
    finally:
        call_token.cancel()


async def aworker_pool(
    token: CancellationToken | None,
    items: Iterable[TInput],
    work_fn: WorkFunc[TInput, TOutput],
    config: PoolConfig | None = None,
) -> list[TaskResult[TInput, TOutput]]:
    """Awaitable ``worker_pool``."""
    items = list(items)
    return await _run_cancellable(token, lambda tok: worker_pool(tok, items, work_fn, config))


async def afor_each(
    token: CancellationToken | None,
    items: Iterable[TInput],
    fn: ForEachFunc[TInput],
    config: PoolConfig | None = None,
) -> BaseException | None:
    """Awaitable ``for_each``."""
    items = list(items)
    return await _run_cancellable(token, lambda tok: for_each(tok, items, fn, config))


async def abatch(
    token: CancellationToken | None,
    items: Iterable[TInput],
    batch_size: int,
    batch_fn: BatchFunc[TInput, TOutput],
    config: PoolConfig | None = None,
) -> list[TaskResult[TInput, TOutput]]:
    """Awaitable ``batch``."""
    items = list(items)
    return await _run_cancellable(
        token, lambda tok: batch(tok, items, batch_size, batch_fn, config)
    )
