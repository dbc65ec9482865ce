"""Typed state contract for the role workflow."""

from dataclasses import dataclass
from typing import TypedDict

from agent_pipeline.state.models import TaskView


class RunState(TypedDict, total=False):
    task_id: str
    mode: str
    current_role: str | None
    next_role: str | None
    completed_roles: list[str]
    failed_roles: list[str]
    steps: int


@dataclass(frozen=True)
class RoleOutcome:
    task: TaskView
    failed: bool = False


def initial_state(task_id: str, mode: str) -> RunState:
    return {
        "task_id": task_id,
        "mode": mode,
        "current_role": None,
        "next_role": None,
        "completed_roles": [],
        "failed_roles": [],
        "steps": 0,
    }
