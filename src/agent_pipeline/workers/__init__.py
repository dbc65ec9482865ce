"""Role workers and the registry that builds them."""

from agent_pipeline.workers.architect import ArchitectWorker
from agent_pipeline.workers.base import BaseWorker, WorkerContext
from agent_pipeline.workers.coder import CoderWorker
from agent_pipeline.workers.planner import PlannerWorker
from agent_pipeline.workers.registry import WorkerRegistry, default_worker_registry
from agent_pipeline.workers.reviewer import ReviewerWorker
from agent_pipeline.workers.tester import TesterWorker

__all__ = [
    "ArchitectWorker",
    "BaseWorker",
    "CoderWorker",
    "PlannerWorker",
    "ReviewerWorker",
    "TesterWorker",
    "WorkerContext",
    "WorkerRegistry",
    "default_worker_registry",
]
