"""Cooperative cancellation shared by every unit of one call."""

import threading
import time

from ..errors import CancellationError, DeadlineExceededError


class CancellationToken:
    """
    Thread-safe cancellation signal with an optional deadline.

    One token is shared by every worker of a call. Cancellation is cooperative:
    the executor stops starting new units once the token is cancelled, and work
    functions are expected to check it (``cancelled``, ``raise_if_cancelled()``
    or ``wait()``) during long operations.

    Example:
        >>> token = CancellationToken(timeout=30.0)
        >>> results = worker_pool(token, account_ids, fetch_account)
    """

    def __init__(self, timeout: float | None = None, reason: str | None = None):
        """
        Create a token.

        Args:
            timeout: Seconds until the token's deadline (None = no deadline)
            reason: Optional description used in error messages
        """
        if timeout is not None and timeout < 0:
            raise ValueError(
                f"timeout must be >= 0 (got {timeout}). "
                f"Pass None for no deadline or a non-negative number of seconds."
            )
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list["CancellationToken"] = []
        self._parent: "CancellationToken | None" = None
        self._reason = reason
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._deadline_hit = False

    def __enter__(self) -> "CancellationToken":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()
        return False

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, remaining={self.remaining()})"

    @property
    def deadline(self) -> float | None:
        """Deadline on the ``time.monotonic()`` clock, if any."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        """True once cancelled explicitly or once the deadline has elapsed."""
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._expire()
            return True
        return False

    def remaining(self) -> float | None:
        """Seconds left until the deadline, 0.0 if elapsed, None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token and every child derived from it. Idempotent."""
        self._cancel(reason, deadline_hit=False)

    def _cancel(self, reason: str | None, deadline_hit: bool) -> None:
        with self._lock:
            if self._event.is_set():
                return
            if reason is not None and self._reason is None:
                self._reason = reason
            self._deadline_hit = self._deadline_hit or deadline_hit
            self._event.set()
            deadline_hit = self._deadline_hit
            children = list(self._children)
            self._children.clear()
            parent, self._parent = self._parent, None
        for child in children:
            child._cancel(reason, deadline_hit)
        if parent is not None:
            parent._discard(self)

    def _discard(self, child: "CancellationToken") -> None:
        with self._lock:
            try:
                self._children.remove(child)
            except ValueError:
                pass

    def _expire(self) -> None:
        self._cancel(None, deadline_hit=True)

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until the token is cancelled or ``timeout`` seconds pass.

        The wait never extends past the token's own deadline.

        Returns:
            True if the token is cancelled when the wait ends
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        if self._event.wait(timeout):
            return True
        return self.cancelled

    def error(self) -> CancellationError | None:
        """Return the error describing why the token is cancelled, or None."""
        if not self.cancelled:
            return None
        if self._deadline_hit:
            return DeadlineExceededError(self._reason or "deadline exceeded")
        return CancellationError(self._reason or "operation cancelled")

    def raise_if_cancelled(self) -> None:
        """Raise ``CancellationError`` (or ``DeadlineExceededError``) if cancelled."""
        error = self.error()
        if error is not None:
            raise error

    def child(self, timeout: float | None = None) -> "CancellationToken":
        """
        Derive a token that is cancelled whenever this one is.

        The child's deadline is the earlier of ``timeout`` and this token's
        remaining time. Cancelling the child does not affect the parent.
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        child = CancellationToken(timeout=timeout)
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                child._parent = self
                return child
        child._cancel(self._reason, self._deadline_hit)
        return child


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    """Return ``token`` or a fresh, never-cancelled token when None."""
    return token if token is not None else CancellationToken()
