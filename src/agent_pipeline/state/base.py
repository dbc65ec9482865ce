"""Storage interfaces for task/agent state and checkpoint snapshots."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from agent_pipeline.artifacts.models import Artifact, Feedback
from agent_pipeline.state.models import (
    AgentRecord,
    Checkpoint,
    CheckpointSummary,
    ErrorEntry,
    ExecutionLogEntry,
    Role,
    TaskView,
)

TaskListener = Callable[[TaskView], None]


class CheckpointStore(Protocol):
    def migrate(self) -> None: ...

    def save(self, checkpoint: Checkpoint) -> None: ...

    def get(self, checkpoint_id: str) -> Checkpoint | None: ...

    def list_for_task(self, task_id: str) -> list[CheckpointSummary]: ...

    def delete(self, checkpoint_id: str) -> bool: ...


class StateStore(Protocol):
    def create_task(
        self,
        title: str,
        description: str,
        project_path: str,
        tech_stack: list[str],
    ) -> TaskView: ...

    def create_agent(self, task_id: str, role: Role | str, model_name: str) -> AgentRecord: ...

    def get_task(self, task_id: str) -> TaskView: ...

    def get_agent(self, agent_id: str) -> AgentRecord: ...

    def list_tasks(self) -> list[TaskView]: ...

    def update_task(self, task_id: str, **changes: Any) -> TaskView: ...

    def update_agent(self, agent_id: str, **changes: Any) -> AgentRecord: ...

    def add_artifact(self, task_id: str, artifact: Artifact) -> None: ...

    def add_feedback(self, task_id: str, artifact_id: str, feedback: Feedback) -> Artifact: ...

    def add_error(self, task_id: str, error: ErrorEntry) -> None: ...

    def append_execution_log(self, task_id: str, entry: ExecutionLogEntry) -> None: ...

    def get_execution_log(self, task_id: str) -> list[ExecutionLogEntry]: ...

    def create_checkpoint(self, task_id: str, checkpoint_id: str | None = None) -> str: ...

    def restore_checkpoint(self, checkpoint_id: str) -> str: ...

    def list_checkpoints(self, task_id: str) -> list[CheckpointSummary]: ...

    def delete_checkpoint(self, checkpoint_id: str) -> None: ...

    def subscribe(self, task_id: str, listener: TaskListener) -> Callable[[], None]: ...

    def delete_task(self, task_id: str) -> None: ...

    def export_task(self, task_id: str) -> str: ...

    def import_task(self, payload: str) -> TaskView: ...

    def get_statistics(self) -> dict[str, int]: ...
