"""In-memory state store and checkpoint store.

Agents live in a single arena keyed by id; a task only keeps the ordered list
of its agent ids and every read renders a ``TaskView`` by dereferencing them.
All records handed out are deep copies, so callers never alias live state.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable
from uuid import uuid4

from agent_pipeline.artifacts.builder import apply_feedback
from agent_pipeline.artifacts.models import Artifact, Feedback, utc_now
from agent_pipeline.errors import CheckpointVersionError, NotFoundError
from agent_pipeline.state.base import CheckpointStore, TaskListener
from agent_pipeline.state.models import (
    ACTIVE_TASK_STATUSES,
    CHECKPOINT_SCHEMA_VERSION,
    AgentRecord,
    Checkpoint,
    CheckpointSummary,
    ErrorEntry,
    ExecutionLogEntry,
    Role,
    TaskContext,
    TaskRecord,
    TaskStatus,
    TaskView,
)

logger = logging.getLogger(__name__)

_TASK_IDENTITY_FIELDS = frozenset({"id", "agent_ids", "created_at"})
_AGENT_IDENTITY_FIELDS = frozenset({"id", "task_id", "role"})


class InMemoryCheckpointStore:
    """Process-local checkpoint storage."""

    def __init__(self) -> None:
        self._checkpoints: dict[str, Checkpoint] = {}

    def migrate(self) -> None:
        return None

    def save(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint.model_copy(deep=True)

    def get(self, checkpoint_id: str) -> Checkpoint | None:
        checkpoint = self._checkpoints.get(checkpoint_id)
        return checkpoint.model_copy(deep=True) if checkpoint else None

    def list_for_task(self, task_id: str) -> list[CheckpointSummary]:
        summaries = [
            CheckpointSummary(
                id=checkpoint.id,
                task_id=checkpoint.task_id,
                created_at=checkpoint.created_at,
                task_updated_at=checkpoint.task.updated_at,
            )
            for checkpoint in self._checkpoints.values()
            if checkpoint.task_id == task_id
        ]
        return sorted(summaries, key=lambda item: item.created_at)

    def delete(self, checkpoint_id: str) -> bool:
        return self._checkpoints.pop(checkpoint_id, None) is not None


class InMemoryStateStore:
    """Single source of truth for task, agent, artifact, and error records."""

    def __init__(self, checkpoint_store: CheckpointStore | None = None) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._agents: dict[str, AgentRecord] = {}
        self._logs: dict[str, list[ExecutionLogEntry]] = {}
        self._listeners: dict[str, list[TaskListener]] = {}
        self._checkpoints = checkpoint_store or InMemoryCheckpointStore()
        self._lock = threading.RLock()

    # Tasks and agents

    def create_task(
        self,
        title: str,
        description: str,
        project_path: str,
        tech_stack: list[str],
    ) -> TaskView:
        record = TaskRecord(
            title=title,
            description=description,
            context=TaskContext(project_path=project_path, tech_stack=list(tech_stack)),
        )
        with self._lock:
            self._tasks[record.id] = record
            self._logs[record.id] = []
            view = self._render(record)
        logger.info("state event=task_created task_id=%s title=%r", record.id, title)
        self._notify(record.id, view)
        return view

    def create_agent(self, task_id: str, role: Role | str, model_name: str) -> AgentRecord:
        with self._lock:
            task = self._require_task(task_id)
            agent = AgentRecord(role=Role(role), task_id=task_id, model_name=model_name)
            self._agents[agent.id] = agent
            task.agent_ids.append(agent.id)
            task.updated_at = utc_now()
            view = self._render(task)
            created = agent.model_copy(deep=True)
        logger.info(
            "state event=agent_created task_id=%s agent_id=%s role=%s",
            task_id,
            agent.id,
            agent.role,
        )
        self._notify(task_id, view)
        return created

    def get_task(self, task_id: str) -> TaskView:
        with self._lock:
            return self._render(self._require_task(task_id))

    def get_agent(self, agent_id: str) -> AgentRecord:
        with self._lock:
            return self._require_agent(agent_id).model_copy(deep=True)

    def list_tasks(self) -> list[TaskView]:
        with self._lock:
            return [self._render(task) for task in self._tasks.values()]

    def update_task(self, task_id: str, **changes: Any) -> TaskView:
        _reject_fields(changes, allowed=TaskRecord.model_fields, protected=_TASK_IDENTITY_FIELDS)
        with self._lock:
            current = self._require_task(task_id)
            payload = current.model_dump()
            payload.update(copy.deepcopy(changes))
            payload["updated_at"] = utc_now()
            updated = TaskRecord.model_validate(payload)
            self._tasks[task_id] = updated
            view = self._render(updated)
        self._notify(task_id, view)
        return view

    def update_agent(self, agent_id: str, **changes: Any) -> AgentRecord:
        _reject_fields(changes, allowed=AgentRecord.model_fields, protected=_AGENT_IDENTITY_FIELDS)
        with self._lock:
            current = self._require_agent(agent_id)
            payload = current.model_dump()
            payload.update(copy.deepcopy(changes))
            updated = AgentRecord.model_validate(payload)
            self._agents[agent_id] = updated
            task = self._tasks.get(updated.task_id)
            if task is not None:
                task.updated_at = utc_now()
            view = self._render(task) if task is not None else None
            result = updated.model_copy(deep=True)
        if view is not None:
            self._notify(view.id, view)
        return result

    # Append-only collections

    def add_artifact(self, task_id: str, artifact: Artifact) -> None:
        if artifact.task_id != task_id:
            raise ValueError(f"Artifact {artifact.id} belongs to task {artifact.task_id}")
        with self._lock:
            task = self._require_task(task_id)
            task.artifacts.append(artifact.model_copy(deep=True))
            if artifact.agent_id in task.agent_ids:
                self._agents[artifact.agent_id].artifact_ids.append(artifact.id)
            task.updated_at = utc_now()
            view = self._render(task)
        self._notify(task_id, view)

    def add_feedback(self, task_id: str, artifact_id: str, feedback: Feedback) -> Artifact:
        with self._lock:
            task = self._require_task(task_id)
            for index, artifact in enumerate(task.artifacts):
                if artifact.id == artifact_id:
                    break
            else:
                raise NotFoundError("artifact", artifact_id)
            revised = apply_feedback(artifact, feedback)
            task.artifacts[index] = revised
            task.feedback.append(feedback.model_copy(deep=True))
            task.updated_at = utc_now()
            view = self._render(task)
            result = revised.model_copy(deep=True)
        logger.info(
            "state event=feedback_added task_id=%s artifact_id=%s version=%d",
            task_id,
            artifact_id,
            result.metadata.version,
        )
        self._notify(task_id, view)
        return result

    def add_error(self, task_id: str, error: ErrorEntry) -> None:
        with self._lock:
            task = self._require_task(task_id)
            task.errors.append(error.model_copy(deep=True))
            if error.agent_id and error.agent_id in task.agent_ids:
                self._agents[error.agent_id].error_ids.append(error.id)
            task.updated_at = utc_now()
            view = self._render(task)
        self._notify(task_id, view)

    def append_execution_log(self, task_id: str, entry: ExecutionLogEntry) -> None:
        with self._lock:
            logs = self._logs.get(task_id)
            if logs is None:
                raise NotFoundError("task", task_id)
            logs.append(entry.model_copy(deep=True))

    def get_execution_log(self, task_id: str) -> list[ExecutionLogEntry]:
        with self._lock:
            logs = self._logs.get(task_id)
            if logs is None:
                raise NotFoundError("task", task_id)
            return [entry.model_copy(deep=True) for entry in logs]

    # Checkpoints

    def create_checkpoint(self, task_id: str, checkpoint_id: str | None = None) -> str:
        with self._lock:
            task = self._require_task(task_id)
            checkpoint = Checkpoint(
                id=checkpoint_id or f"checkpoint-{uuid4().hex}",
                task_id=task_id,
                task=task.model_copy(deep=True),
                agents=[
                    self._agents[agent_id].model_copy(deep=True) for agent_id in task.agent_ids
                ],
            )
        self._checkpoints.save(checkpoint)
        logger.info(
            "state event=checkpoint_created task_id=%s checkpoint_id=%s agents=%d",
            task_id,
            checkpoint.id,
            len(checkpoint.agents),
        )
        return checkpoint.id

    def restore_checkpoint(self, checkpoint_id: str) -> str:
        checkpoint = self._checkpoints.get(checkpoint_id)
        if checkpoint is None:
            raise NotFoundError("checkpoint", checkpoint_id)
        if checkpoint.schema_version != CHECKPOINT_SCHEMA_VERSION:
            raise CheckpointVersionError(
                checkpoint_id, checkpoint.schema_version, CHECKPOINT_SCHEMA_VERSION
            )

        task_id = checkpoint.task_id
        with self._lock:
            previous = self._tasks.get(task_id)
            if previous is not None:
                for agent_id in previous.agent_ids:
                    self._agents.pop(agent_id, None)
            restored = checkpoint.task.model_copy(deep=True)
            self._tasks[task_id] = restored
            for agent in checkpoint.agents:
                self._agents[agent.id] = agent.model_copy(deep=True)
            self._logs.setdefault(task_id, [])
            view = self._render(restored)
        logger.info(
            "state event=checkpoint_restored task_id=%s checkpoint_id=%s",
            task_id,
            checkpoint_id,
        )
        self._notify(task_id, view)
        return task_id

    def list_checkpoints(self, task_id: str) -> list[CheckpointSummary]:
        return self._checkpoints.list_for_task(task_id)

    def delete_checkpoint(self, checkpoint_id: str) -> None:
        if not self._checkpoints.delete(checkpoint_id):
            raise NotFoundError("checkpoint", checkpoint_id)

    # Subscriptions

    def subscribe(self, task_id: str, listener: TaskListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(task_id, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(task_id, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def _notify(self, task_id: str, view: TaskView) -> None:
        with self._lock:
            listeners = list(self._listeners.get(task_id, []))
        for listener in listeners:
            try:
                listener(view.model_copy(deep=True))
            except Exception:  # noqa: BLE001
                logger.exception("state event=listener_failed task_id=%s", task_id)

    # Housekeeping

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            task = self._require_task(task_id)
            for agent_id in task.agent_ids:
                self._agents.pop(agent_id, None)
            self._logs.pop(task_id, None)
            self._listeners.pop(task_id, None)
            del self._tasks[task_id]
        logger.info("state event=task_deleted task_id=%s", task_id)

    def export_task(self, task_id: str) -> str:
        return self.get_task(task_id).model_dump_json(indent=2)

    def import_task(self, payload: str) -> TaskView:
        imported = TaskView.model_validate_json(payload)
        record = imported.record()
        with self._lock:
            previous = self._tasks.get(record.id)
            if previous is not None:
                for agent_id in previous.agent_ids:
                    self._agents.pop(agent_id, None)
            self._tasks[record.id] = record
            for agent in imported.agents:
                self._agents[agent.id] = agent.model_copy(deep=True)
            self._logs[record.id] = []
            view = self._render(record)
        self._notify(record.id, view)
        return view

    def get_statistics(self) -> dict[str, int]:
        with self._lock:
            tasks = list(self._tasks.values())
            return {
                "total_tasks": len(tasks),
                "active_tasks": sum(1 for task in tasks if task.status in ACTIVE_TASK_STATUSES),
                "completed_tasks": sum(1 for task in tasks if task.status == TaskStatus.COMPLETE),
                "failed_tasks": sum(1 for task in tasks if task.status == TaskStatus.FAILED),
                "total_agents": len(self._agents),
                "total_artifacts": sum(len(task.artifacts) for task in tasks),
            }

    # Internals

    def _require_task(self, task_id: str) -> TaskRecord:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def _require_agent(self, agent_id: str) -> AgentRecord:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id)
        return agent

    def _render(self, task: TaskRecord) -> TaskView:
        payload = task.model_dump()
        payload["agents"] = [
            self._agents[agent_id].model_dump()
            for agent_id in task.agent_ids
            if agent_id in self._agents
        ]
        return TaskView.model_validate(payload)


def _reject_fields(changes: dict[str, Any], *, allowed: Any, protected: frozenset[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(unknown)}")
    locked = sorted(set(changes) & protected)
    if locked:
        raise ValueError(f"Fields cannot be updated: {', '.join(locked)}")
