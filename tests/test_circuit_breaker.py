"""Tests for CircuitBreaker state transitions and pool integration."""

import threading
import time

import pytest

from batch_exec import CircuitBreaker, CircuitOpenError, CircuitState, PoolConfig, worker_pool


def failing():
    raise ConnectionError("downstream unavailable")


def test_defaults_for_non_positive_values():
    """Non-positive settings fall back to defaults."""

    breaker = CircuitBreaker(failure_threshold=0, success_threshold=-1, open_timeout=0)

    assert breaker.failure_threshold == 5
    assert breaker.success_threshold == 2
    assert breaker.open_timeout == 5.0
    assert breaker.state is CircuitState.CLOSED


def test_opens_after_threshold_failures():
    """Consecutive failures open the circuit, which then rejects calls."""

    breaker = CircuitBreaker(failure_threshold=3, open_timeout=60.0, name="ledger-api")

    for _ in range(3):
        with pytest.raises(ConnectionError):
            breaker.call(failing)

    assert breaker.state is CircuitState.OPEN
    called = []
    with pytest.raises(CircuitOpenError, match="ledger-api"):
        breaker.call(lambda: called.append(1))
    assert called == []


def test_success_resets_failure_count():
    """A success while closed clears the failure streak."""

    breaker = CircuitBreaker(failure_threshold=2)

    with pytest.raises(ConnectionError):
        breaker.call(failing)
    assert breaker.call(lambda: "ok") == "ok"
    assert breaker.failure_count == 0
    with pytest.raises(ConnectionError):
        breaker.call(failing)

    assert breaker.state is CircuitState.CLOSED


def test_half_open_recovers_after_successes():
    """After the timeout probes are admitted and enough successes close it."""

    breaker = CircuitBreaker(failure_threshold=1, success_threshold=2, open_timeout=0.05)
    with pytest.raises(ConnectionError):
        breaker.call(failing)
    assert breaker.state is CircuitState.OPEN

    time.sleep(0.07)
    assert breaker.call(lambda: 1) == 1
    assert breaker.state is CircuitState.HALF_OPEN
    assert breaker.call(lambda: 2) == 2

    assert breaker.state is CircuitState.CLOSED


def test_half_open_failure_reopens():
    """Any probe failure sends the circuit back to open."""

    breaker = CircuitBreaker(failure_threshold=1, open_timeout=0.05)
    with pytest.raises(ConnectionError):
        breaker.call(failing)

    time.sleep(0.07)
    with pytest.raises(ConnectionError):
        breaker.call(failing)

    assert breaker.state is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        breaker.call(lambda: None)


def test_wrapped_work_function_in_pool():
    """Once open, remaining pool items fail fast with CircuitOpenError."""

    breaker = CircuitBreaker(failure_threshold=2, open_timeout=60.0)
    calls = []

    def submit(tok, item):
        calls.append(item)
        raise ConnectionError("timeout talking to ledger")

    results = worker_pool(None, range(6), breaker.wrap(submit), PoolConfig(workers=1))

    assert len(results) == 6
    assert calls == [0, 1]
    assert all(isinstance(r.error, ConnectionError) for r in results[:2])
    assert all(isinstance(r.error, CircuitOpenError) for r in results[2:])


def test_concurrent_calls_keep_consistent_counts():
    """Concurrent successes and failures never corrupt state."""

    breaker = CircuitBreaker(failure_threshold=1000)
    barrier = threading.Barrier(8)

    def hammer():
        barrier.wait()
        for i in range(100):
            try:
                breaker.call(failing if i % 2 else (lambda: None))
            except ConnectionError:
                pass

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert breaker.state is CircuitState.CLOSED
    assert 0 <= breaker.failure_count < 1000
