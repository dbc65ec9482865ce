"""FastAPI app entrypoint for agent-pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from agent_pipeline.artifacts.models import Artifact, Feedback
from agent_pipeline.config.settings import Settings, get_settings
from agent_pipeline.errors import (
    CheckpointVersionError,
    NotFoundError,
    OrchestratorError,
    WorkerFailure,
)
from agent_pipeline.orchestrator import Orchestrator, build_orchestrator
from agent_pipeline.state.models import (
    CheckpointSummary,
    ExecutionLogEntry,
    ExecutionMode,
    TaskView,
)


class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    project_path: str = "."
    tech_stack: list[str] = Field(default_factory=list)


class RunTaskRequest(BaseModel):
    mode: ExecutionMode | None = None


class FeedbackRequest(BaseModel):
    author: str = Field(min_length=1)
    comment: str = Field(min_length=1)


class CheckpointResponse(BaseModel):
    checkpoint_id: str
    task_id: str


def create_app(
    *,
    orchestrator: Orchestrator | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    def _get_orchestrator(request: Request) -> Orchestrator:
        if request.app.state.orchestrator is None:
            request.app.state.orchestrator = build_orchestrator(
                settings, project_root=Path.cwd()
            )
        return request.app.state.orchestrator

    @app.exception_handler(NotFoundError)
    def not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(CheckpointVersionError)
    def incompatible_checkpoint(_: Request, exc: CheckpointVersionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools(request: Request) -> dict[str, list[dict[str, Any]]]:
        gateway = _get_orchestrator(request).gateway
        return {"tools": [spec.describe() for spec in gateway.list_tools()]}

    @app.post("/tasks", response_model=TaskView)
    def create_task(payload: CreateTaskRequest, request: Request) -> TaskView:
        return _get_orchestrator(request).store.create_task(
            title=payload.title,
            description=payload.description,
            project_path=payload.project_path,
            tech_stack=payload.tech_stack,
        )

    @app.get("/tasks", response_model=list[TaskView])
    def list_tasks(request: Request) -> list[TaskView]:
        return _get_orchestrator(request).store.list_tasks()

    @app.get("/tasks/{task_id}", response_model=TaskView)
    def get_task(task_id: str, request: Request) -> TaskView:
        return _get_orchestrator(request).store.get_task(task_id)

    @app.delete("/tasks/{task_id}", status_code=204)
    def delete_task(task_id: str, request: Request) -> None:
        _get_orchestrator(request).delete_task(task_id)

    @app.post("/tasks/{task_id}/run", response_model=TaskView)
    def run_task(
        task_id: str, request: Request, payload: RunTaskRequest | None = None
    ) -> TaskView:
        orchestrator = _get_orchestrator(request)
        mode = payload.mode if payload is not None else None
        try:
            return orchestrator.execute_task(task_id, mode=mode)
        except (WorkerFailure, OrchestratorError) as exc:
            raise HTTPException(status_code=500, detail=f"Task run failed: {exc}") from exc

    @app.get("/tasks/{task_id}/report", response_class=PlainTextResponse)
    def get_report(task_id: str, request: Request) -> str:
        return _get_orchestrator(request).export_execution_report(task_id)

    @app.get("/tasks/{task_id}/log", response_model=list[ExecutionLogEntry])
    def get_log(task_id: str, request: Request) -> list[ExecutionLogEntry]:
        return _get_orchestrator(request).store.get_execution_log(task_id)

    @app.post("/tasks/{task_id}/checkpoints", response_model=CheckpointResponse)
    def create_checkpoint(task_id: str, request: Request) -> CheckpointResponse:
        checkpoint_id = _get_orchestrator(request).create_checkpoint(task_id)
        return CheckpointResponse(checkpoint_id=checkpoint_id, task_id=task_id)

    @app.get("/tasks/{task_id}/checkpoints", response_model=list[CheckpointSummary])
    def list_checkpoints(task_id: str, request: Request) -> list[CheckpointSummary]:
        orchestrator = _get_orchestrator(request)
        orchestrator.store.get_task(task_id)
        return orchestrator.store.list_checkpoints(task_id)

    @app.post("/checkpoints/{checkpoint_id}/restore", response_model=CheckpointResponse)
    def restore_checkpoint(checkpoint_id: str, request: Request) -> CheckpointResponse:
        task_id = _get_orchestrator(request).restore_checkpoint(checkpoint_id)
        return CheckpointResponse(checkpoint_id=checkpoint_id, task_id=task_id)

    @app.post("/tasks/{task_id}/artifacts/{artifact_id}/feedback", response_model=Artifact)
    def add_feedback(
        task_id: str, artifact_id: str, payload: FeedbackRequest, request: Request
    ) -> Artifact:
        feedback = Feedback(
            artifact_id=artifact_id, author=payload.author, comment=payload.comment
        )
        return _get_orchestrator(request).store.add_feedback(task_id, artifact_id, feedback)

    return app


app = create_app()
