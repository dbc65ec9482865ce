"""Graph-driven execution of role workers over a single task."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from langgraph.errors import GraphRecursionError

from agent_pipeline.artifacts.models import Feedback
from agent_pipeline.config.settings import Settings, get_settings
from agent_pipeline.errors import ExecutionCancelled, OrchestratorError, WorkerFailure
from agent_pipeline.events import EventBus, EventHandler, EventType
from agent_pipeline.graph.state import RoleOutcome, initial_state
from agent_pipeline.graph.topology import ExecutionGraph
from agent_pipeline.graph.workflow import build_workflow
from agent_pipeline.llm.client import ModelClient, build_model_client
from agent_pipeline.llm.prompts import PromptStore
from agent_pipeline.state.base import StateStore
from agent_pipeline.state.memory import InMemoryStateStore
from agent_pipeline.state.models import (
    AgentStatus,
    AssistedFailurePolicy,
    ErrorEntry,
    ExecutionMode,
    Role,
    Severity,
    TaskStatus,
    TaskView,
)
from agent_pipeline.state.postgres import PostgresCheckpointStore
from agent_pipeline.tools.gateway import ToolGateway
from agent_pipeline.tools.registry import build_registry
from agent_pipeline.utils.concurrency import CancellationToken
from agent_pipeline.workers.base import WorkerContext
from agent_pipeline.workers.registry import WorkerRegistry, default_worker_registry

logger = logging.getLogger(__name__)

_PAUSE_POLL_S = 0.05


@dataclass
class RunContext:
    task_id: str
    mode: ExecutionMode
    cancel_token: CancellationToken
    feedback: list[Feedback] = field(default_factory=list)
    running: threading.Event = field(default_factory=threading.Event)

    def __post_init__(self) -> None:
        self.running.set()

    @property
    def paused(self) -> bool:
        return not self.running.is_set()


class Orchestrator:
    """Run a task through the role graph and report lifecycle events.

    One ``execute_task`` call per task id runs at a time. Roles run
    sequentially on the calling thread; the route after each role is taken
    from the task as that role left it.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        gateway: ToolGateway,
        model: ModelClient,
        prompts: PromptStore | None = None,
        settings: Settings | None = None,
        registry: WorkerRegistry | None = None,
        graph: ExecutionGraph | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.model = model
        self.prompts = prompts or PromptStore()
        self.settings = settings or get_settings()
        self.registry = registry or default_worker_registry()
        self.graph = graph or ExecutionGraph.default()
        self.bus = bus or EventBus()
        self._worker_context = WorkerContext(
            store=self.store,
            gateway=self.gateway,
            model=self.model,
            prompts=self.prompts,
            settings=self.settings,
        )
        self._context: RunContext | None = None
        self._last_task_id: str | None = None
        self._lock = threading.Lock()
        self._task_locks: dict[str, threading.Lock] = {}

    # Execution

    def execute_task(
        self,
        task_id: str,
        mode: ExecutionMode | str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> TaskView:
        run_mode = ExecutionMode(mode or self.settings.default_execution_mode)
        self.store.get_task(task_id)

        with self._task_lock(task_id):
            context = RunContext(
                task_id=task_id, mode=run_mode, cancel_token=cancel_token or CancellationToken()
            )
            with self._lock:
                self._context = context
                self._last_task_id = task_id

            logger.info("task_run event=start task_id=%s mode=%s", task_id, run_mode)
            self.bus.emit(EventType.TASK_STARTED, task_id=task_id, payload={"mode": str(run_mode)})
            workflow = build_workflow(self.graph, lambda role: self._run_role(context, role))
            try:
                final_state = workflow.invoke(
                    initial_state(task_id, str(run_mode)),
                    config={"recursion_limit": self.settings.max_graph_steps},
                )
            except ExecutionCancelled:
                self.store.add_error(
                    task_id, ErrorEntry(message="Execution cancelled", severity=Severity.INFO)
                )
                logger.info("task_run event=cancelled task_id=%s", task_id)
                self.bus.emit(EventType.TASK_CANCELLED, task_id=task_id)
                raise
            except GraphRecursionError as exc:
                message = f"Execution exceeded {self.settings.max_graph_steps} graph steps"
                self.store.update_task(task_id, status=TaskStatus.FAILED)
                logger.warning("task_run event=step_limit task_id=%s", task_id)
                self.bus.emit(EventType.TASK_FAILED, task_id=task_id, error=message)
                raise OrchestratorError(message) from exc
            finally:
                with self._lock:
                    if self._context is context:
                        self._context = None

            failed_roles = list(final_state.get("failed_roles", []))
            policy = AssistedFailurePolicy(self.settings.assisted_failure_policy)
            if failed_roles and policy == AssistedFailurePolicy.STRICT:
                task = self.store.update_task(task_id, status=TaskStatus.FAILED)
                logger.warning(
                    "task_run event=failed task_id=%s failed_roles=%s policy=%s",
                    task_id,
                    ",".join(failed_roles),
                    policy,
                )
                self.bus.emit(
                    EventType.TASK_FAILED,
                    task_id=task_id,
                    error=f"Roles failed: {', '.join(failed_roles)}",
                    payload={"failed_roles": failed_roles},
                )
                return task

            task = self.store.get_task(task_id)
            logger.info(
                "task_run event=completed task_id=%s status=%s completed_roles=%s failed_roles=%s",
                task_id,
                task.status,
                ",".join(final_state.get("completed_roles", [])),
                ",".join(failed_roles),
            )
            self.bus.emit(
                EventType.TASK_COMPLETED,
                task_id=task_id,
                payload={
                    "completed_roles": list(final_state.get("completed_roles", [])),
                    "failed_roles": failed_roles,
                },
            )
            return task

    def _run_role(self, context: RunContext, role: Role) -> RoleOutcome:
        self._wait_while_paused(context)
        context.cancel_token.raise_if_cancelled()

        self.bus.emit(EventType.AGENT_STARTED, task_id=context.task_id, role=role)
        worker = self.registry.create(role, context.task_id, self._worker_context)
        try:
            worker.execute(context.cancel_token)
        except WorkerFailure as exc:
            logger.warning(
                "task_run event=role_failed task_id=%s role=%s mode=%s error=%s",
                context.task_id,
                role,
                context.mode,
                exc.message,
            )
            self.bus.emit(
                EventType.AGENT_FAILED, task_id=context.task_id, role=role, error=exc.message
            )
            if context.mode == ExecutionMode.AGENT_DRIVEN:
                self.store.update_task(context.task_id, status=TaskStatus.FAILED)
                self.bus.emit(
                    EventType.TASK_FAILED, task_id=context.task_id, role=role, error=exc.message
                )
                raise
            return RoleOutcome(task=self.store.get_task(context.task_id), failed=True)

        self.bus.emit(EventType.AGENT_COMPLETED, task_id=context.task_id, role=role)
        return RoleOutcome(task=self.store.get_task(context.task_id))

    def _wait_while_paused(self, context: RunContext) -> None:
        if not context.paused:
            return
        logger.info("task_run event=suspended task_id=%s", context.task_id)
        self.bus.emit(EventType.EXECUTION_SUSPENDED, task_id=context.task_id)
        while not context.running.wait(_PAUSE_POLL_S):
            context.cancel_token.raise_if_cancelled()

    def _task_lock(self, task_id: str) -> threading.Lock:
        with self._lock:
            return self._task_locks.setdefault(task_id, threading.Lock())

    def delete_task(self, task_id: str) -> None:
        """Delete a task once any run on it has finished."""
        with self._task_lock(task_id):
            try:
                self.store.delete_task(task_id)
            finally:
                with self._lock:
                    self._task_locks.pop(task_id, None)
                    if self._last_task_id == task_id:
                        self._last_task_id = None

    # Run control

    def pause_execution(self) -> None:
        context = self._require_context()
        context.running.clear()
        logger.info("task_run event=paused task_id=%s", context.task_id)
        self.bus.emit(EventType.EXECUTION_PAUSED, task_id=context.task_id)

    def resume_execution(self) -> None:
        context = self._require_context()
        context.running.set()
        logger.info("task_run event=resumed task_id=%s", context.task_id)
        self.bus.emit(EventType.EXECUTION_RESUMED, task_id=context.task_id)

    def cancel_execution(self) -> None:
        with self._lock:
            context = self._context
            self._context = None
        if context is None:
            raise OrchestratorError("No execution in progress")
        context.cancel_token.cancel()
        context.running.set()
        logger.info("task_run event=cancel_requested task_id=%s", context.task_id)
        self.bus.emit(EventType.EXECUTION_CANCELLED, task_id=context.task_id)

    def provide_feedback(self, feedback: Feedback) -> None:
        context = self._require_context()
        context.feedback.append(feedback)
        self.bus.emit(
            EventType.FEEDBACK_PROVIDED,
            task_id=context.task_id,
            payload={"artifact_id": feedback.artifact_id, "feedback_id": feedback.id},
        )

    def _require_context(self) -> RunContext:
        with self._lock:
            context = self._context
        if context is None:
            raise OrchestratorError("No execution in progress")
        return context

    # Checkpoints

    def create_checkpoint(self, task_id: str | None = None) -> str:
        if task_id is None:
            with self._lock:
                task_id = self._context.task_id if self._context is not None else None
        if task_id is None:
            raise OrchestratorError("No task to checkpoint")
        checkpoint_id = self.store.create_checkpoint(task_id)
        self.bus.emit(
            EventType.CHECKPOINT_CREATED,
            task_id=task_id,
            payload={"checkpoint_id": checkpoint_id},
        )
        return checkpoint_id

    def restore_checkpoint(self, checkpoint_id: str) -> str:
        task_id = self.store.restore_checkpoint(checkpoint_id)
        self.bus.emit(
            EventType.CHECKPOINT_RESTORED,
            task_id=task_id,
            payload={"checkpoint_id": checkpoint_id},
        )
        return task_id

    # Reporting

    def get_execution_status(self) -> dict[str, Any]:
        with self._lock:
            context = self._context
        if context is None:
            return {
                "active": False,
                "task_id": None,
                "mode": None,
                "paused": False,
                "feedback": 0,
                "agents": [],
            }
        task = self.store.get_task(context.task_id)
        return {
            "active": True,
            "task_id": context.task_id,
            "mode": str(context.mode),
            "paused": context.paused,
            "feedback": len(context.feedback),
            "agents": [
                {"role": str(agent.role), "status": str(agent.status)} for agent in task.agents
            ],
        }

    def get_statistics(self, task_id: str | None = None) -> dict[str, Any]:
        """Agent counts by status and execution time for one task (default: latest run)."""
        task_id = task_id or self._last_task_id
        agents = self.store.get_task(task_id).agents if task_id else []
        durations = [agent.duration_ms for agent in agents if agent.duration_ms is not None]
        by_status: dict[str, int] = {}
        for agent in agents:
            by_status[str(agent.status)] = by_status.get(str(agent.status), 0) + 1
        return {
            "task_id": task_id,
            "total_agents": len(agents),
            "completed_agents": by_status.get(AgentStatus.COMPLETE, 0),
            "failed_agents": by_status.get(AgentStatus.ERROR, 0),
            "agents_by_status": by_status,
            "execution_time_ms": sum(durations),
            "average_duration_ms": sum(durations) / len(durations) if durations else 0.0,
        }

    def export_execution_report(self, task_id: str) -> str:
        task = self.store.get_task(task_id)
        lines = [
            "# Execution Report",
            "",
            f"**Task**: {task.title}",
            f"**Status**: {task.status}",
            f"**Progress**: {task.progress:g}%",
            f"**Created**: {task.created_at.isoformat()}",
            f"**Updated**: {task.updated_at.isoformat()}",
            "",
            "## Agents",
        ]
        for agent in task.agents:
            lines.append(f"### {agent.role.value.upper()}")
            lines.append(f"- Status: {agent.status}")
            lines.append(f"- Progress: {agent.progress:g}%")
            lines.append(f"- Artifacts: {len(agent.artifact_ids)}")
            lines.append(f"- Errors: {len(agent.error_ids)}")
            if agent.duration_ms is not None:
                lines.append(f"- Duration: {agent.duration_ms:.0f}ms")
            lines.append("")

        lines.append("## Artifacts")
        for artifact in task.artifacts:
            lines.append(f"- **{artifact.type}**: {artifact.metadata.summary or ''}")

        if task.errors:
            lines.extend(["", "## Errors"])
            for error in task.errors:
                lines.append(f"- [{error.severity}] {error.message}")
        return "\n".join(lines) + "\n"

    def subscribe(
        self, event_type: EventType | str | None, handler: EventHandler
    ) -> Callable[[], None]:
        return self.bus.subscribe(event_type, handler)


def build_orchestrator(
    settings: Settings | None = None,
    *,
    project_root: Path | str = ".",
    model: ModelClient | None = None,
) -> Orchestrator:
    """Wire the default collaborators from settings."""
    settings = settings or get_settings()
    checkpoint_store = None
    if settings.database_url:
        checkpoint_store = PostgresCheckpointStore(settings.database_url)
        checkpoint_store.migrate()
    gateway = ToolGateway(
        registry=build_registry(project_root, command_timeout_s=settings.command_timeout_s),
        timeout_s=settings.tool_timeout_s,
        max_retries=settings.tool_max_retries,
        backoff_s=settings.tool_retry_backoff_s,
        history_limit=settings.tool_history_limit,
    )
    return Orchestrator(
        store=InMemoryStateStore(checkpoint_store),
        gateway=gateway,
        model=model or build_model_client(settings),
        settings=settings,
    )
