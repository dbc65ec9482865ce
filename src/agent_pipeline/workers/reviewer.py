"""Reviewer role: review each generated file and write an overall assessment."""

from __future__ import annotations

from collections import Counter

from agent_pipeline.artifacts.builder import from_reasoning_trace
from agent_pipeline.artifacts.models import FileRequirement, utc_now
from agent_pipeline.state.models import AgentStatus, Role, TaskStatus
from agent_pipeline.utils.concurrency import run_batch
from agent_pipeline.workers.base import BaseWorker
from agent_pipeline.workers.parsing import language_for_path


class ReviewerWorker(BaseWorker):
    role = Role.REVIEWER

    def run(self) -> None:
        self.update_status(AgentStatus.EXECUTING, 10)
        self.add_reasoning_step("Starting code review phase")

        task = self.task()
        if task.implementation_plan is None:
            raise RuntimeError("Implementation plan not found. Coder agent must execute first.")

        requirements = [
            requirement
            for requirement in task.implementation_plan.file_requirements
            if requirement.type != "delete"
        ]
        results = run_batch(
            [
                lambda requirement=requirement: self._review_file(requirement)
                for requirement in requirements
            ],
            self.context.settings.batch_concurrency,
            self._cancel_token,
        )

        reasoning: list[str] = []
        reviewed = 0
        for requirement, result in zip(requirements, results):
            if result.ok:
                reviewed += 1
                reasoning.append(f"**{requirement.path}**:\n{result.value}")
            else:
                self.add_reasoning_step(f"Could not review {requirement.path}: {result.error}")
                reasoning.append(f"**{requirement.path}**: Could not review ({result.error})")
        self.add_reasoning_step(f"Reviewed {reviewed} files")
        self.update_status(AgentStatus.EXECUTING, 80)

        counts = Counter(str(artifact.type) for artifact in task.artifacts)
        assessment = self.ask(
            self.render_prompt(
                "Reviewer: Overall Assessment",
                {
                    "task": task.description,
                    "artifact_counts": "\n".join(
                        f"- {kind}: {count}" for kind, count in sorted(counts.items())
                    )
                    or "- none",
                },
            )
        )
        reasoning.append(f"**Overall Assessment**:\n{assessment}")
        self.add_reasoning_step("Completed overall quality assessment")

        self.add_artifact(from_reasoning_trace(self.task_id, self.agent_id, reasoning))
        self.update_task(TaskStatus.COMPLETE, 100, completed_at=utc_now())
        self.complete()

    def _review_file(self, requirement: FileRequirement) -> str:
        self.add_reasoning_step(f"Reviewing file: {requirement.path}")
        read = self.invoke_tool("read_file", {"path": requirement.path})
        if not read.success:
            raise RuntimeError(read.error or "read failed")
        prompt = self.render_prompt(
            "Reviewer: Code Review",
            {
                "file_path": requirement.path,
                "language": language_for_path(requirement.path),
                "content": read.output["content"],
            },
        )
        return self.ask(prompt, keep_history=False)
