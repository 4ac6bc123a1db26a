"""Testing utilities for batch_exec."""

from .mocks import MockBatchFunction, MockWorkError, MockWorkFunction

__all__ = ["MockBatchFunction", "MockWorkError", "MockWorkFunction"]
