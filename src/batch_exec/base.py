"""Result types and function signatures shared by every entry point."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .core.cancellation import CancellationToken
from .errors import BulkOperationError, CancellationError

# Type variables for generic typing
TInput = TypeVar("TInput")  # Item handed to the work function
TOutput = TypeVar("TOutput")  # Value returned by the work function

# Type aliases for caller-supplied functions
WorkFunc = Callable[[CancellationToken, TInput], TOutput]
ForEachFunc = Callable[[CancellationToken, TInput], None]
BatchFunc = Callable[[CancellationToken, list[TInput]], Sequence[TOutput]]


@dataclass
class TaskResult(Generic[TInput, TOutput]):
    """
    Outcome of one submitted input.

    Attributes:
        index: Position of the input in the original submission order. With
            unordered delivery this is the only safe way to correlate a result
            with per-input data kept elsewhere.
        input: The submitted input
        output: Value returned by the work function, None on failure
        error: Exception raised by the work function (or produced by the
            executor, e.g. ``CancellationError``), None on success
    """

    index: int
    input: TInput
    output: TOutput | None = None
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        """True when the unit completed without error."""
        return self.error is None

    @property
    def cancelled(self) -> bool:
        """True when the unit was cancelled before or while running."""
        return isinstance(self.error, CancellationError)

    def unwrap(self) -> TOutput | None:
        """Return the output, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.output


@dataclass
class ResultSummary:
    """
    Counts over a result sequence.

    Attributes:
        total: Number of results
        succeeded: Results without error
        failed: Results with any error (cancelled ones included)
        cancelled: Results whose error is a ``CancellationError``
        error_counts: Failures keyed by exception type name
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    error_counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Sequence[TaskResult[Any, Any]]) -> "ResultSummary":
        summary = cls(total=len(results))
        for result in results:
            if result.error is None:
                summary.succeeded += 1
                continue
            summary.failed += 1
            if isinstance(result.error, CancellationError):
                summary.cancelled += 1
            error_type = type(result.error).__name__
            summary.error_counts[error_type] = summary.error_counts.get(error_type, 0) + 1
        return summary

    @property
    def success_rate(self) -> float:
        """Fraction of successful results (0.0 when empty)."""
        return self.succeeded / self.total if self.total else 0.0


def first_error(results: Sequence[TaskResult[Any, Any]]) -> BaseException | None:
    """Return the error of the lowest-index failed result, or None."""
    failed = [r for r in results if r.error is not None]
    if not failed:
        return None
    return min(failed, key=lambda r: r.index).error


def collect_outputs(results: Sequence[TaskResult[TInput, TOutput]]) -> list[TOutput]:
    """
    Return outputs in original index order.

    Raises:
        BulkOperationError: If any result carries an error. ``partial`` holds the
            outputs of the successful results, in index order.
    """
    ordered = sorted(results, key=lambda r: r.index)
    errors = {r.index: r.error for r in ordered if r.error is not None}
    outputs = [r.output for r in ordered if r.error is None]
    if errors:
        raise BulkOperationError(errors, partial=outputs)
    return outputs  # type: ignore[return-value]
