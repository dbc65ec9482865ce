"""Typed, synchronous event bus for orchestrator lifecycle events."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import StrEnum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from agent_pipeline.artifacts.models import utc_now
from agent_pipeline.state.models import Role

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_CANCELLED = "task_cancelled"
    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    AGENT_FAILED = "agent_failed"
    EXECUTION_PAUSED = "execution_paused"
    EXECUTION_SUSPENDED = "execution_suspended"
    EXECUTION_RESUMED = "execution_resumed"
    EXECUTION_CANCELLED = "execution_cancelled"
    FEEDBACK_PROVIDED = "feedback_provided"
    CHECKPOINT_CREATED = "checkpoint_created"
    CHECKPOINT_RESTORED = "checkpoint_restored"


class ExecutionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    task_id: str | None = None
    role: Role | None = None
    error: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


EventHandler = Callable[[ExecutionEvent], None]


class EventBus:
    """Deliver events to subscribers in subscription order.

    Handlers registered for ``None`` receive every event. A handler that raises
    is logged and skipped; the publisher never sees the exception.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[EventType | None, EventHandler]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, event_type: EventType | str | None, handler: EventHandler
    ) -> Callable[[], None]:
        key = EventType(event_type) if event_type is not None else None
        entry = (key, handler)
        with self._lock:
            self._handlers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._handlers:
                    self._handlers.remove(entry)

        return unsubscribe

    def publish(self, event: ExecutionEvent) -> None:
        with self._lock:
            handlers = [
                handler for key, handler in self._handlers if key is None or key == event.type
            ]
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "event_bus event=handler_failed type=%s task_id=%s", event.type, event.task_id
                )

    def emit(self, event_type: EventType, **fields: Any) -> ExecutionEvent:
        event = ExecutionEvent(type=event_type, **fields)
        self.publish(event)
        return event
