"""Architect role: turn the task plan into files, steps, and dependencies."""

from __future__ import annotations

from agent_pipeline.artifacts.builder import from_implementation_plan
from agent_pipeline.state.models import AgentStatus, Role, TaskStatus
from agent_pipeline.workers.base import BaseWorker
from agent_pipeline.workers.parsing import default_entrypoint, parse_implementation_plan


class ArchitectWorker(BaseWorker):
    role = Role.ARCHITECT

    def run(self) -> None:
        self.update_status(AgentStatus.EXECUTING, 10)
        self.add_reasoning_step("Starting architecture planning phase")

        task = self.task()
        if task.plan is None:
            raise RuntimeError("Task plan not found. Planner agent must execute first.")

        prompt = self.render_prompt(
            "Architect: Implementation Plan",
            {
                "task_plan": task.plan,
                "tech_stack": task.context.tech_stack or "Unspecified",
                "project_structure": task.context.codebase_summary or "New project",
            },
        )
        self.add_reasoning_step("Requesting implementation plan from model")
        self.update_status(AgentStatus.EXECUTING, 30)
        response = self.ask(prompt)

        plan = parse_implementation_plan(
            response, task.id, default_path=default_entrypoint(task.context.tech_stack)
        )
        self.add_reasoning_step(
            f"Created implementation plan with {len(plan.steps)} steps "
            f"and {len(plan.file_requirements)} files"
        )
        self.update_status(AgentStatus.EXECUTING, 80)

        self.add_artifact(from_implementation_plan(self.task_id, self.agent_id, plan))
        self.update_task(TaskStatus.EXECUTING, 40, implementation_plan=plan)
        self.complete()
