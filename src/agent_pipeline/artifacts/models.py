"""Artifact records and the typed payloads they carry.

The content of an artifact is a closed tagged union: the ``type`` field of the
content model picks the shape, and it always equals ``Artifact.type``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


class ArtifactType(StrEnum):
    PLAN = "plan"
    IMPLEMENTATION_PLAN = "implementation_plan"
    CODE_PATCH = "code_patch"
    SCREENSHOT = "screenshot"
    WALKTHROUGH = "walkthrough"
    REASONING = "reasoning"


class Feedback(BaseModel):
    """User feedback attached to one artifact."""

    id: str = Field(default_factory=new_id)
    artifact_id: str
    author: str
    comment: str
    timestamp: datetime = Field(default_factory=utc_now)
    resolved: bool = False


# Payload types produced by the role workers.


class TaskStep(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    assigned_to: str | None = None
    status: Literal["pending", "in_progress", "complete", "failed"] = "pending"
    dependencies: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)


class TaskPlan(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    goals: list[str] = Field(default_factory=list)
    approach: str = ""
    steps: list[TaskStep] = Field(default_factory=list)
    estimated_duration: str = "To be determined"
    dependencies: list[str] = Field(default_factory=list)


class FileRequirement(BaseModel):
    path: str
    purpose: str = ""
    type: Literal["create", "modify", "delete"] = "create"
    dependencies: list[str] = Field(default_factory=list)


class ImplementationStep(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    files: list[str] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)
    expected_output: str | None = None


class Dependency(BaseModel):
    name: str
    version: str | None = None
    type: Literal["npm", "pip", "system", "other"] = "other"
    install_command: str | None = None


class ImplementationPlan(BaseModel):
    id: str = Field(default_factory=new_id)
    task_id: str
    steps: list[ImplementationStep] = Field(default_factory=list)
    file_requirements: list[FileRequirement] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)


class CodePatch(BaseModel):
    id: str = Field(default_factory=new_id)
    file_path: str
    before: str = ""
    after: str
    description: str = ""
    reasoning: str = ""


class TestResult(BaseModel):
    __test__ = False

    id: str = Field(default_factory=new_id)
    name: str
    status: Literal["pass", "fail", "skip"]
    duration_ms: float = 0.0
    error: str | None = None
    output: str | None = None


class WalkthroughStep(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    action: str = ""
    expected_result: str = ""
    screenshot: str | None = None
    test_results: list[TestResult] = Field(default_factory=list)


class WalkthroughSummary(BaseModel):
    total_steps: int
    passed_tests: int
    failed_tests: int
    skipped_tests: int


# Content union.


class PlanContent(BaseModel):
    type: Literal["plan"] = "plan"
    plan: TaskPlan
    formatted: str


class ImplementationPlanContent(BaseModel):
    type: Literal["implementation_plan"] = "implementation_plan"
    plan: ImplementationPlan
    formatted: str


class CodePatchContent(BaseModel):
    type: Literal["code_patch"] = "code_patch"
    patches: list[CodePatch]
    formatted: str


class ScreenshotContent(BaseModel):
    type: Literal["screenshot"] = "screenshot"
    data_base64: str
    mime_type: str
    description: str
    captured_at: datetime


class WalkthroughContent(BaseModel):
    type: Literal["walkthrough"] = "walkthrough"
    steps: list[WalkthroughStep]
    formatted: str
    summary: WalkthroughSummary


class ReasoningContent(BaseModel):
    type: Literal["reasoning"] = "reasoning"
    steps: list[str]
    formatted: str


ArtifactContent = Annotated[
    PlanContent
    | ImplementationPlanContent
    | CodePatchContent
    | ScreenshotContent
    | WalkthroughContent
    | ReasoningContent,
    Field(discriminator="type"),
]


class ArtifactMetadata(BaseModel):
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)
    summary: str | None = None


class Artifact(BaseModel):
    """Typed, versioned output unit produced by a role."""

    id: str = Field(default_factory=new_id)
    type: ArtifactType
    agent_id: str
    task_id: str
    content: ArtifactContent
    metadata: ArtifactMetadata = Field(default_factory=ArtifactMetadata)
    feedback: list[Feedback] = Field(default_factory=list)

    @model_validator(mode="after")
    def _content_matches_type(self) -> Artifact:
        if self.content.type != self.type:
            raise ValueError(
                f"Artifact type {self.type} does not match content type {self.content.type}"
            )
        return self
