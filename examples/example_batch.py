"""Example: submitting many transactions in batches with nested pools.

Each batch is handled by a small nested worker pool, the way a bulk
transfer workflow sends every transaction of a batch concurrently while
only a couple of batches are in flight at once.
"""

import logging
import random
import uuid

from pydantic import BaseModel

from batch_exec import (
    CancellationToken,
    PoolConfig,
    ResultSummary,
    TaskResult,
    batch,
    get_optimal_batch_size,
    worker_pool,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


class TransferInput(BaseModel):
    """A transfer to submit."""

    idempotency_key: str
    amount: int
    source: str
    destination: str


class TransferReceipt(BaseModel):
    """What the ledger returns for a submitted transfer."""

    transaction_id: str
    amount: int


def submit_transfer(token: CancellationToken, transfer: TransferInput) -> TransferReceipt:
    """Stand-in for the ledger API."""
    if token.wait(random.uniform(0.005, 0.02)):
        token.raise_if_cancelled()
    if random.random() < 0.02:
        raise RuntimeError(f"ledger rejected {transfer.idempotency_key}")
    return TransferReceipt(transaction_id=str(uuid.uuid4()), amount=transfer.amount)


def submit_chunk(
    token: CancellationToken, chunk: list[TransferInput]
) -> list[TaskResult[TransferInput, TransferReceipt]]:
    """Submit one batch with its own small pool; item failures stay per item."""
    return worker_pool(token, chunk, submit_transfer, PoolConfig(workers=5))


def main():
    transfers = [
        TransferInput(
            idempotency_key=f"m2c-{i}",
            amount=random.randint(100, 5000),
            source="merchant",
            destination="customer",
        )
        for i in range(500)
    ]

    batch_size = get_optimal_batch_size(len(transfers), 60)
    print(f"Submitting {len(transfers)} transfers in batches of {batch_size}")

    with CancellationToken(timeout=60.0) as token:
        results = batch(token, transfers, batch_size, submit_chunk, PoolConfig(workers=2))

    summary = ResultSummary.from_results(results)
    print(f"Succeeded: {summary.succeeded}/{summary.total}")
    for result in results:
        if not result.success:
            print(f"  #{result.index} {result.input.idempotency_key}: {result.error}")


if __name__ == "__main__":
    main()
