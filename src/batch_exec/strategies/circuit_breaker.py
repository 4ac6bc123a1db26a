"""Circuit breaker protecting a downstream dependency from cascading failures."""

import functools
import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

from ..core.cancellation import CancellationToken
from ..errors import CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_SUCCESS_THRESHOLD = 2
DEFAULT_OPEN_TIMEOUT = 5.0

TInput = TypeVar("TInput")
TOutput = TypeVar("TOutput")


class CircuitState(Enum):
    """States of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Three-state circuit breaker (closed, open, half-open).

    - CLOSED: calls pass; ``failure_threshold`` consecutive failures open it.
    - OPEN: calls are rejected with ``CircuitOpenError`` until ``open_timeout``
      seconds have passed since the last failure, then it half-opens.
    - HALF_OPEN: calls pass as probes; ``success_threshold`` successes close it,
      any failure opens it again.

    Non-positive thresholds or timeout fall back to the defaults.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        name: str | None = None,
    ):
        """
        Initialize a closed circuit breaker.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            success_threshold: Half-open successes that close it again
            open_timeout: Seconds the circuit stays open before probing
            name: Label used in log messages and ``CircuitOpenError``
        """
        self.failure_threshold = (
            failure_threshold if failure_threshold > 0 else DEFAULT_FAILURE_THRESHOLD
        )
        self.success_threshold = (
            success_threshold if success_threshold > 0 else DEFAULT_SUCCESS_THRESHOLD
        )
        self.open_timeout = open_timeout if open_timeout > 0 else DEFAULT_OPEN_TIMEOUT
        self.name = name

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = 0.0

    @property
    def state(self) -> CircuitState:
        """Current state (an OPEN circuit whose timeout elapsed still reads OPEN until probed)."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def call(self, fn: Callable[..., TOutput], *args: Any, **kwargs: Any) -> TOutput:
        """
        Run ``fn`` under circuit breaker control.

        Raises:
            CircuitOpenError: The circuit is open
            Exception: Whatever ``fn`` raises (after being counted as a failure)
        """
        if not self._can_proceed():
            raise CircuitOpenError(self.name)

        try:
            result = fn(*args, **kwargs)
        except Exception:
            self._after(success=False)
            raise
        self._after(success=True)
        return result

    def wrap(
        self, work_fn: Callable[[CancellationToken, TInput], TOutput]
    ) -> Callable[[CancellationToken, TInput], TOutput]:
        """
        Adapt a work function so every call goes through this breaker.

        Items rejected while the circuit is open fail with ``CircuitOpenError``.
        """

        @functools.wraps(work_fn)
        def guarded(token: CancellationToken, item: TInput) -> TOutput:
            return self.call(work_fn, token, item)

        return guarded

    def _can_proceed(self) -> bool:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.OPEN:
                if time.monotonic() - self._last_failure_time >= self.open_timeout:
                    self._state = CircuitState.HALF_OPEN
                    self._success_count = 0
                    if self.name:
                        logger.info(f"ℹ️  Circuit '{self.name}' half-open, probing")
                    return True
                return False
            # HALF_OPEN: every call is a probe
            return True

    def _after(self, success: bool) -> None:
        with self._lock:
            if success:
                if self._state is CircuitState.HALF_OPEN:
                    self._success_count += 1
                    if self._success_count >= self.success_threshold:
                        self._reset()
                elif self._state is CircuitState.CLOSED:
                    self._failure_count = 0
                return

            if self._state is CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.failure_threshold:
                    self._open()
            elif self._state is CircuitState.HALF_OPEN:
                self._open()

    def _open(self) -> None:
        # Caller holds the lock
        self._state = CircuitState.OPEN
        self._last_failure_time = time.monotonic()
        if self.name:
            logger.warning(
                f"⚠️  Circuit '{self.name}' opened after {self._failure_count} failures"
            )

    def _reset(self) -> None:
        # Caller holds the lock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        if self.name:
            logger.info(f"✓ Circuit '{self.name}' closed after recovery")
