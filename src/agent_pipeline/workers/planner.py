"""Planner role: break the request down into a task plan."""

from __future__ import annotations

from agent_pipeline.artifacts.builder import from_plan
from agent_pipeline.state.models import AgentStatus, Role, TaskStatus
from agent_pipeline.workers.base import BaseWorker
from agent_pipeline.workers.parsing import parse_task_plan


class PlannerWorker(BaseWorker):
    role = Role.PLANNER

    def run(self) -> None:
        self.update_status(AgentStatus.PLANNING, 10)
        self.add_reasoning_step("Starting task planning phase")

        task = self.task()
        prompt = self.render_prompt(
            "Planner: Task Breakdown",
            {
                "user_request": task.description,
                "tech_stack": task.context.tech_stack or "Unspecified",
                "project_structure": task.context.codebase_summary or "New project",
                "existing_patterns": task.context.known_patterns or "None",
            },
        )
        self.add_reasoning_step("Requesting task plan from model")
        self.update_status(AgentStatus.PLANNING, 30)
        response = self.ask(prompt)

        plan = parse_task_plan(response, task.title)
        self.add_reasoning_step(f"Created task plan with {len(plan.steps)} steps")
        self.update_status(AgentStatus.PLANNING, 80)

        self.add_artifact(from_plan(self.task_id, self.agent_id, plan))
        self.update_task(TaskStatus.PLANNING, 20, plan=plan)
        self.complete()
