"""Capability-gated tool gateway with schema validation, timeout/retry, and call history."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from typing import Any

from agent_pipeline.errors import NotFoundError, ToolValidationError
from agent_pipeline.state.models import Role
from agent_pipeline.tools.registry import ToolCategory, ToolSpec
from agent_pipeline.tools.schemas import ToolInvocationResult, validate_parameters
from agent_pipeline.utils.concurrency import CancellationToken

logger = logging.getLogger(__name__)


class ToolGateway:
    """Invoke registered tools. Failures come back as results, never as exceptions."""

    def __init__(
        self,
        *,
        registry: dict[str, ToolSpec] | None = None,
        timeout_s: float = 30.0,
        max_retries: int = 0,
        backoff_s: float = 0.0,
        history_limit: int = 10_000,
    ) -> None:
        self._tools: dict[str, ToolSpec] = dict(registry or {})
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._history: deque[ToolInvocationResult] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

    def register(self, spec: ToolSpec) -> None:
        with self._lock:
            if spec.name in self._tools:
                raise ValueError(f"Tool already registered: {spec.name}")
            self._tools[spec.name] = spec

    def unregister(self, tool_name: str) -> None:
        with self._lock:
            self._tools.pop(tool_name, None)

    def get(self, tool_name: str) -> ToolSpec:
        spec = self._tools.get(tool_name)
        if spec is None:
            raise NotFoundError("tool", tool_name)
        return spec

    def list_tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def list_by_category(self, category: ToolCategory | str) -> list[ToolSpec]:
        return [spec for spec in self._tools.values() if spec.category == category]

    def list_for_role(self, role: Role | str) -> list[ToolSpec]:
        return [spec for spec in self._tools.values() if spec.permits(role)]

    def invoke(
        self,
        tool_name: str,
        params: dict[str, Any],
        *,
        role: Role | str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ToolInvocationResult:
        spec = self.get(tool_name)
        started_at = time.perf_counter()
        raw_input = dict(params) if isinstance(params, dict) else {}

        if not spec.permits(role):
            return self._record(
                tool_name,
                raw_input,
                error=f"Tool {tool_name} is not permitted for role {role}",
                started_at=started_at,
                attempts=0,
            )

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            validated = validate_parameters(tool_name, spec.input_model, spec.parameters, params)
        except ToolValidationError as exc:
            return self._record(
                tool_name, raw_input, error=str(exc), started_at=started_at, attempts=0
            )

        attempts = 0
        final_error = "unknown error"
        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            try:
                output = self._execute_once(spec, validated)
            except Exception as exc:  # noqa: BLE001
                final_error = str(exc) or type(exc).__name__
                logger.warning(
                    "tool_call event=attempt_failed tool=%s attempt=%d error=%s",
                    tool_name,
                    attempts,
                    final_error,
                )
                if attempt < self.max_retries:
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    if self.backoff_s > 0:
                        time.sleep(self.backoff_s)
                continue
            return self._record(
                tool_name,
                raw_input,
                output=output,
                started_at=started_at,
                attempts=attempts,
            )

        return self._record(
            tool_name, raw_input, error=final_error, started_at=started_at, attempts=attempts
        )

    def get_call_history(
        self,
        tool_name: str | None = None,
        limit: int | None = None,
    ) -> list[ToolInvocationResult]:
        with self._lock:
            history = list(self._history)
        if tool_name:
            history = [item for item in history if item.tool_name == tool_name]
        if limit:
            history = history[-limit:]
        return history

    def clear_call_history(self) -> None:
        with self._lock:
            self._history.clear()

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            history = list(self._history)
        successful = sum(1 for item in history if item.success)
        calls_by_category: dict[str, int] = {}
        for item in history:
            spec = self._tools.get(item.tool_name)
            if spec is not None:
                key = str(spec.category)
                calls_by_category[key] = calls_by_category.get(key, 0) + 1
        return {
            "total_tools": len(self._tools),
            "total_calls": len(history),
            "successful_calls": successful,
            "failed_calls": len(history) - successful,
            "average_duration_ms": (
                sum(item.duration_ms for item in history) / len(history) if history else 0.0
            ),
            "calls_by_category": calls_by_category,
        }

    def _execute_once(self, spec: ToolSpec, params: dict[str, Any]) -> Any:
        timeout_s = spec.timeout_s if spec.timeout_s is not None else self.timeout_s
        pool = ThreadPoolExecutor(max_workers=1)
        future = pool.submit(spec.fn, params)
        try:
            return future.result(timeout=timeout_s)
        except TimeoutError as exc:
            raise TimeoutError(f"Tool '{spec.name}' timed out after {timeout_s:.2f}s") from exc
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _record(
        self,
        tool_name: str,
        raw_input: dict[str, Any],
        *,
        started_at: float,
        attempts: int,
        output: Any = None,
        error: str | None = None,
    ) -> ToolInvocationResult:
        result = ToolInvocationResult(
            tool_name=tool_name,
            input=raw_input,
            output=output,
            error=error,
            success=error is None,
            duration_ms=_duration_ms(started_at),
            attempts=attempts,
        )
        with self._lock:
            self._history.append(result)
        logger.info(
            "tool_call event=finish tool=%s success=%s attempts=%d duration_ms=%.2f",
            tool_name,
            result.success,
            attempts,
            result.duration_ms,
        )
        return result


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)


__all__ = ["ToolGateway"]
