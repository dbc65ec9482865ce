"""Task, agent, and checkpoint records shared by the store, workers, and API."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agent_pipeline.artifacts.models import (
    Artifact,
    Feedback,
    ImplementationPlan,
    TaskPlan,
    new_id,
    utc_now,
)

CHECKPOINT_SCHEMA_VERSION = 1


class Role(StrEnum):
    PLANNER = "planner"
    ARCHITECT = "architect"
    CODER = "coder"
    TESTER = "tester"
    REVIEWER = "reviewer"


class TaskStatus(StrEnum):
    PENDING = "pending"
    PLANNING = "planning"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    FAILED = "failed"
    PAUSED = "paused"


ACTIVE_TASK_STATUSES = frozenset(
    {TaskStatus.PENDING, TaskStatus.PLANNING, TaskStatus.EXECUTING, TaskStatus.VERIFYING}
)


class AgentStatus(StrEnum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    WAITING_FOR_FEEDBACK = "waiting_for_feedback"
    COMPLETE = "complete"
    ERROR = "error"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ExecutionMode(StrEnum):
    AGENT_DRIVEN = "agent-driven"
    AGENT_ASSISTED = "agent-assisted"


class AssistedFailurePolicy(StrEnum):
    """What an agent-assisted run does with the task once a role has failed.

    ``lenient`` leaves the status to whatever the workers set. ``strict`` marks
    the task failed after the run finishes; the run itself is not aborted.
    """

    LENIENT = "lenient"
    STRICT = "strict"


class LogEntryType(StrEnum):
    TOOL_CALL = "tool_call"
    DECISION = "decision"
    ARTIFACT_GENERATED = "artifact_generated"
    FEEDBACK_RECEIVED = "feedback_received"
    ERROR = "error"


class TaskContext(BaseModel):
    project_path: str
    tech_stack: list[str] = Field(default_factory=list)
    codebase_summary: str = ""
    known_patterns: list[str] = Field(default_factory=list)
    knowledge_base_refs: list[str] = Field(default_factory=list)


class ErrorEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    agent_id: str | None = None
    role: Role | None = None
    message: str
    stack: str | None = None
    severity: Severity = Severity.ERROR
    resolved: bool = False
    resolution: str | None = None


class ExecutionLogEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    agent_id: str
    type: LogEntryType
    content: dict[str, Any] = Field(default_factory=dict)


class AgentRecord(BaseModel):
    """Execution state of one role within one task.

    Artifacts and errors live on the task; the agent keeps their ids.
    """

    id: str = Field(default_factory=new_id)
    role: Role
    task_id: str
    model_name: str = ""
    status: AgentStatus = AgentStatus.IDLE
    progress: float = Field(default=0, ge=0, le=100)
    current_step: str | None = None
    artifact_ids: list[str] = Field(default_factory=list)
    error_ids: list[str] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000.0


class TaskRecord(BaseModel):
    """Persisted task record. Agents are referenced by id only."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    progress: float = Field(default=0, ge=0, le=100)
    plan: TaskPlan | None = None
    implementation_plan: ImplementationPlan | None = None
    agent_ids: list[str] = Field(default_factory=list)
    artifacts: list[Artifact] = Field(default_factory=list)
    feedback: list[Feedback] = Field(default_factory=list)
    errors: list[ErrorEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    context: TaskContext


class TaskView(TaskRecord):
    """Task record with its agents dereferenced from the agent arena."""

    agents: list[AgentRecord] = Field(default_factory=list)

    def record(self) -> TaskRecord:
        return TaskRecord.model_validate(self.model_dump(exclude={"agents"}))

    def agent_for_role(self, role: Role | str) -> AgentRecord | None:
        matches = [agent for agent in self.agents if agent.role == role]
        return matches[-1] if matches else None


class Checkpoint(BaseModel):
    """Immutable point-in-time snapshot of a task and all of its agents."""

    model_config = ConfigDict(frozen=True)

    id: str
    task_id: str
    schema_version: int = CHECKPOINT_SCHEMA_VERSION
    created_at: datetime = Field(default_factory=utc_now)
    task: TaskRecord
    agents: list[AgentRecord] = Field(default_factory=list)


class CheckpointSummary(BaseModel):
    id: str
    task_id: str
    created_at: datetime
    task_updated_at: datetime
