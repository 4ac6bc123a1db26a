"""Error taxonomy for the execution layer.

Errors raised by caller-supplied work functions are never wrapped: they are
stored as-is in the failing item's ``TaskResult``. The classes below cover the
outcomes the executor itself produces.
"""

from typing import Any


class BatchExecError(Exception):
    """Base class for errors produced by batch_exec itself."""

    pass


class CancellationError(BatchExecError):
    """The shared cancellation token was cancelled before the unit completed."""

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


class DeadlineExceededError(CancellationError, TimeoutError):
    """
    The token's deadline elapsed before the unit completed.

    Subclasses both ``CancellationError`` (it is a cancellation) and the builtin
    ``TimeoutError`` so callers can catch it either way.
    """

    def __init__(self, message: str = "deadline exceeded"):
        super().__init__(message)


class RateLimitError(BatchExecError):
    """A rate limiter refused admission within the allowed wait."""

    pass


class CircuitOpenError(BatchExecError):
    """A circuit breaker is open and rejected the call."""

    def __init__(self, name: str | None = None):
        self.name = name
        if name:
            super().__init__(f"circuit breaker '{name}' open")
        else:
            super().__init__("circuit breaker open")


class MissingOutputError(BatchExecError):
    """A batch function returned no output for this item of its chunk."""

    def __init__(self, index: int, chunk_size: int, outputs: int):
        self.index = index
        super().__init__(
            f"batch function returned {outputs} output(s) for a chunk of {chunk_size}; "
            f"no output for item {index}"
        )


class BulkOperationError(BatchExecError):
    """
    One or more items of a bulk helper failed.

    Attributes:
        errors: Mapping of original index (or key, for ``fetch_map``) to its error
        partial: Whatever was successfully produced (dict or list, helper-specific)
    """

    def __init__(self, errors: dict[Any, BaseException], partial: Any = None):
        self.errors = errors
        self.partial = partial
        first_key = next(iter(errors)) if errors else None
        first = errors.get(first_key) if errors else None
        super().__init__(
            f"{len(errors)} item(s) failed; first failure at {first_key!r}: "
            f"{type(first).__name__}: {first}"
        )

    @property
    def first(self) -> BaseException | None:
        """First failure in insertion (original) order."""
        return next(iter(self.errors.values()), None)
