"""Thread-based concurrency primitives used by workers, tools, and the orchestrator."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from agent_pipeline.errors import ExecutionCancelled

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``threading.Event``."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled("operation cancelled")


@dataclass(frozen=True)
class BatchResult(Generic[T]):
    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_batch(
    jobs: Sequence[Callable[[], T]],
    concurrency: int,
    cancel_token: CancellationToken | None = None,
) -> list[BatchResult[T]]:
    """Run independent jobs with at most ``concurrency`` in flight.

    Results come back in input order. A failing job does not stop the others;
    its exception is carried on the result. If the token is cancelled, jobs
    that have not started are skipped and ``ExecutionCancelled`` is raised
    once in-flight jobs return.
    """
    if concurrency <= 0:
        raise ValueError("concurrency must be > 0")
    token = cancel_token or CancellationToken()
    token.raise_if_cancelled()
    if not jobs:
        return []

    def _run_one(job: Callable[[], T]) -> T:
        token.raise_if_cancelled()
        return job()

    with ThreadPoolExecutor(max_workers=min(concurrency, len(jobs))) as pool:
        futures = [pool.submit(_run_one, job) for job in jobs]
        results: list[BatchResult[T]] = []
        for index, future in enumerate(futures):
            try:
                results.append(BatchResult(index=index, value=future.result()))
            except ExecutionCancelled:
                for pending in futures[index + 1 :]:
                    pending.cancel()
                raise
            except Exception as exc:  # noqa: BLE001
                results.append(BatchResult(index=index, error=exc))

    token.raise_if_cancelled()
    return results


def retry(
    fn: Callable[[], T],
    *,
    max_retries: int,
    delay_s: float,
    retry_if: Callable[[Exception], bool] | None = None,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Call ``fn`` up to ``max_retries + 1`` times with exponential backoff."""
    attempt = 0
    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return fn()
        except ExecutionCancelled:
            raise
        except Exception as exc:
            if attempt >= max_retries or (retry_if is not None and not retry_if(exc)):
                raise
            wait_s = delay_s * (2**attempt)
            attempt += 1
            if wait_s > 0:
                if cancel_token is not None:
                    if cancel_token.wait(wait_s):
                        raise ExecutionCancelled("operation cancelled") from exc
                else:
                    time.sleep(wait_s)


__all__ = [
    "BatchResult",
    "CancellationToken",
    "retry",
    "run_batch",
]
