from __future__ import annotations

import threading
import time

import pytest

from agent_pipeline.errors import ExecutionCancelled
from agent_pipeline.utils.concurrency import CancellationToken, retry, run_batch


def test_run_batch_keeps_input_order_and_captures_errors() -> None:
    def fail() -> int:
        raise ValueError("bad job")

    results = run_batch([lambda: 1, fail, lambda: 3], concurrency=2)

    assert [result.index for result in results] == [0, 1, 2]
    assert [result.value for result in results if result.ok] == [1, 3]
    assert isinstance(results[1].error, ValueError)


def test_run_batch_bounds_concurrency() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def job() -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1

    run_batch([job] * 8, concurrency=3)

    assert 1 <= peak <= 3


def test_run_batch_rejects_cancelled_token_and_bad_limit() -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ExecutionCancelled):
        run_batch([lambda: 1], concurrency=1, cancel_token=token)
    with pytest.raises(ValueError):
        run_batch([lambda: 1], concurrency=0)
    assert run_batch([], concurrency=2) == []


def test_retry_succeeds_after_transient_failures() -> None:
    attempts: list[int] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("again")
        return "ok"

    assert retry(flaky, max_retries=2, delay_s=0) == "ok"
    assert len(attempts) == 3


def test_retry_stops_on_non_retryable_errors() -> None:
    attempts: list[int] = []

    def broken() -> None:
        attempts.append(1)
        raise KeyError("fatal")

    with pytest.raises(KeyError):
        retry(
            broken,
            max_retries=5,
            delay_s=0,
            retry_if=lambda exc: isinstance(exc, ConnectionError),
        )
    assert len(attempts) == 1


def test_cancellation_interrupts_retry_backoff() -> None:
    token = CancellationToken()

    def failing() -> None:
        token.cancel()
        raise ConnectionError("down")

    with pytest.raises(ExecutionCancelled):
        retry(failing, max_retries=3, delay_s=5.0, cancel_token=token)


def test_token_wait_returns_once_cancelled() -> None:
    token = CancellationToken()
    threading.Timer(0.01, token.cancel).start()

    assert token.wait(2.0) is True
    assert token.is_cancelled
    with pytest.raises(ExecutionCancelled):
        token.raise_if_cancelled()
