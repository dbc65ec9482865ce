"""Role to worker factory table shared by every call site that builds workers."""

from __future__ import annotations

from typing import Callable

from agent_pipeline.errors import NotFoundError
from agent_pipeline.state.models import Role
from agent_pipeline.workers.architect import ArchitectWorker
from agent_pipeline.workers.base import BaseWorker, WorkerContext
from agent_pipeline.workers.coder import CoderWorker
from agent_pipeline.workers.planner import PlannerWorker
from agent_pipeline.workers.reviewer import ReviewerWorker
from agent_pipeline.workers.tester import TesterWorker

WorkerFactory = Callable[[str, WorkerContext], BaseWorker]


class WorkerRegistry:
    def __init__(self, factories: dict[Role, WorkerFactory] | None = None) -> None:
        self._factories: dict[Role, WorkerFactory] = {
            Role(role): factory for role, factory in (factories or {}).items()
        }

    def register(self, role: Role | str, factory: WorkerFactory) -> None:
        """Register ``factory`` for ``role``, replacing any previous entry."""
        self._factories[Role(role)] = factory

    def create(self, role: Role | str, task_id: str, context: WorkerContext) -> BaseWorker:
        factory = self._factories.get(Role(role))
        if factory is None:
            raise NotFoundError("worker", str(role))
        return factory(task_id, context)

    def roles(self) -> list[Role]:
        return list(self._factories)

    def __contains__(self, role: object) -> bool:
        return role in self._factories


def default_worker_registry() -> WorkerRegistry:
    return WorkerRegistry(
        {
            Role.PLANNER: PlannerWorker,
            Role.ARCHITECT: ArchitectWorker,
            Role.CODER: CoderWorker,
            Role.TESTER: TesterWorker,
            Role.REVIEWER: ReviewerWorker,
        }
    )
