"""Shared machinery for role workers.

A worker is bound to one task and owns one AgentRecord. It reports status,
reasoning, artifacts, and errors to the state store itself; the orchestrator
only sees whether ``execute`` returned or raised.
"""

from __future__ import annotations

import logging
import threading
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from agent_pipeline.artifacts.models import Artifact, utc_now
from agent_pipeline.config.settings import Settings
from agent_pipeline.errors import ExecutionCancelled, TransportError, WorkerFailure
from agent_pipeline.llm.client import ChatMessage, ModelClient
from agent_pipeline.llm.prompts import PromptStore
from agent_pipeline.state.base import StateStore
from agent_pipeline.state.models import (
    AgentStatus,
    ErrorEntry,
    ExecutionLogEntry,
    LogEntryType,
    Role,
    Severity,
    TaskStatus,
    TaskView,
)
from agent_pipeline.tools.gateway import ToolGateway
from agent_pipeline.tools.schemas import ToolInvocationResult
from agent_pipeline.utils.concurrency import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    """Collaborators every worker needs, shared across one orchestrator."""

    store: StateStore
    gateway: ToolGateway
    model: ModelClient
    prompts: PromptStore
    settings: Settings


class BaseWorker(ABC):
    role: ClassVar[Role]

    def __init__(self, task_id: str, context: WorkerContext) -> None:
        self.task_id = task_id
        self.context = context
        agent = context.store.create_agent(task_id, self.role, context.model.model_name)
        self.agent_id = agent.id
        self._history: list[ChatMessage] = []
        self._lock = threading.RLock()
        self._cancel_token = CancellationToken()

    def execute(self, cancel_token: CancellationToken | None = None) -> None:
        """Run the role. Failures are recorded, then re-raised as WorkerFailure."""
        self._cancel_token = cancel_token or CancellationToken()
        try:
            self._cancel_token.raise_if_cancelled()
            self.run()
        except ExecutionCancelled:
            self.update_status(AgentStatus.IDLE)
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self.add_error(
                f"{self.role.value.capitalize()} execution failed: {message}",
                Severity.ERROR,
                stack=traceback.format_exc(),
            )
            self.update_status(AgentStatus.ERROR)
            logger.warning(
                "worker event=failed task_id=%s role=%s error=%s", self.task_id, self.role, message
            )
            raise WorkerFailure(self.role, message) from exc

    @abstractmethod
    def run(self) -> None:
        """Role-specific work."""

    # State helpers

    def task(self) -> TaskView:
        return self.context.store.get_task(self.task_id)

    def update_status(self, status: AgentStatus, progress: float | None = None) -> None:
        changes: dict[str, Any] = {"status": status}
        if progress is not None:
            changes["progress"] = progress
        self.context.store.update_agent(self.agent_id, **changes)

    def update_task(self, status: TaskStatus, progress: float, **changes: Any) -> None:
        self.context.store.update_task(self.task_id, status=status, progress=progress, **changes)

    def add_reasoning_step(self, step: str) -> None:
        with self._lock:
            agent = self.context.store.get_agent(self.agent_id)
            self.context.store.update_agent(
                self.agent_id, reasoning=[*agent.reasoning, step], current_step=step
            )

    def add_artifact(self, artifact: Artifact) -> None:
        self.context.store.add_artifact(self.task_id, artifact)
        self.log_execution(
            LogEntryType.ARTIFACT_GENERATED,
            {"artifact_id": artifact.id, "type": str(artifact.type)},
        )

    def add_error(
        self, message: str, severity: Severity = Severity.ERROR, *, stack: str | None = None
    ) -> None:
        self.context.store.add_error(
            self.task_id,
            ErrorEntry(
                agent_id=self.agent_id,
                role=self.role,
                message=message,
                severity=severity,
                stack=stack,
            ),
        )

    def log_execution(self, entry_type: LogEntryType, content: dict[str, Any]) -> None:
        self.context.store.append_execution_log(
            self.task_id,
            ExecutionLogEntry(agent_id=self.agent_id, type=entry_type, content=content),
        )

    def complete(self) -> None:
        self.context.store.update_agent(
            self.agent_id,
            status=AgentStatus.COMPLETE,
            progress=100,
            completed_at=utc_now(),
        )

    # Collaborator helpers

    def render_prompt(self, template_name: str, variables: dict[str, Any]) -> str:
        template = self.context.prompts.get_template_by_name(template_name)
        return self.context.prompts.render(template.id, variables)

    def ask(self, prompt: str, *, keep_history: bool = True) -> str:
        """Send ``prompt`` to the model, optionally as part of this worker's conversation."""
        self._cancel_token.raise_if_cancelled()
        user_message = ChatMessage(role="user", content=prompt)
        with self._lock:
            messages = [*self._history, user_message] if keep_history else [user_message]
        try:
            response = self.context.model.complete(messages, cancel_token=self._cancel_token)
        except TransportError as exc:
            self.add_error(f"Failed to get response from model: {exc}", Severity.ERROR)
            raise
        if keep_history:
            with self._lock:
                self._history.extend(
                    [user_message, ChatMessage(role="assistant", content=response)]
                )
        self.log_execution(
            LogEntryType.DECISION,
            {"prompt_chars": len(prompt), "response_chars": len(response)},
        )
        return response

    def ask_streaming(self, prompt: str) -> str:
        """Stream a completion and return the concatenated text."""
        self._cancel_token.raise_if_cancelled()
        with self._lock:
            messages = [*self._history, ChatMessage(role="user", content=prompt)]
        chunks: list[str] = []
        try:
            for chunk in self.context.model.stream(messages, cancel_token=self._cancel_token):
                chunks.append(chunk)
        except TransportError as exc:
            self.add_error(f"Failed to stream response from model: {exc}", Severity.ERROR)
            raise
        response = "".join(chunks)
        with self._lock:
            self._history.extend([messages[-1], ChatMessage(role="assistant", content=response)])
        self.log_execution(
            LogEntryType.DECISION,
            {"prompt_chars": len(prompt), "response_chars": len(response), "streamed": True},
        )
        return response

    def invoke_tool(self, tool_name: str, params: dict[str, Any]) -> ToolInvocationResult:
        self._cancel_token.raise_if_cancelled()
        result = self.context.gateway.invoke(
            tool_name, params, role=self.role, cancel_token=self._cancel_token
        )
        self.log_execution(
            LogEntryType.TOOL_CALL,
            {
                "tool_name": tool_name,
                "input": result.input,
                "output": result.output,
                "success": result.success,
                "error": result.error,
                "duration_ms": result.duration_ms,
            },
        )
        if not result.success:
            self.add_error(f"Tool execution failed: {result.error}", Severity.WARNING)
        return result

    def get_available_tools(self) -> list[str]:
        return [spec.name for spec in self.context.gateway.list_for_role(self.role)]
