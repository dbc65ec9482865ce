"""Coder role: generate and write each file named by the implementation plan."""

from __future__ import annotations

from agent_pipeline.artifacts.builder import from_code_patches
from agent_pipeline.artifacts.models import CodePatch, FileRequirement
from agent_pipeline.errors import ExecutionCancelled
from agent_pipeline.state.models import AgentStatus, Role, Severity, TaskStatus
from agent_pipeline.workers.base import BaseWorker
from agent_pipeline.workers.parsing import extract_code_block, language_for_path


class CoderWorker(BaseWorker):
    role = Role.CODER

    def run(self) -> None:
        self.update_status(AgentStatus.EXECUTING, 10)
        self.add_reasoning_step("Starting code generation phase")

        task = self.task()
        if task.implementation_plan is None:
            raise RuntimeError("Implementation plan not found. Architect agent must execute first.")

        requirements = [
            requirement
            for requirement in task.implementation_plan.file_requirements
            if requirement.type != "delete"
        ]
        patches: list[CodePatch] = []
        for index, requirement in enumerate(requirements, start=1):
            self.add_reasoning_step(f"Processing file: {requirement.path}")
            try:
                patches.append(self._generate(requirement, task.description))
            except ExecutionCancelled:
                raise
            except Exception as exc:  # noqa: BLE001
                self.add_error(
                    f"Failed to generate code for {requirement.path}: {exc}", Severity.WARNING
                )
            self.update_status(AgentStatus.EXECUTING, min(20 + index / len(requirements) * 70, 90))

        self.add_reasoning_step(f"Generated code patches for {len(patches)} files")
        if patches:
            self.add_artifact(from_code_patches(self.task_id, self.agent_id, patches))

        self.update_task(TaskStatus.VERIFYING, 60)
        self.complete()

    def _generate(self, requirement: FileRequirement, task_description: str) -> CodePatch:
        language = language_for_path(requirement.path)

        before = ""
        if requirement.type == "modify":
            existing = self.invoke_tool("read_file", {"path": requirement.path})
            if existing.success:
                before = existing.output["content"]
            else:
                self.add_reasoning_step(f"Could not read existing file: {requirement.path}")

        context = "\n".join(
            [
                f"Task: {task_description}",
                f"File Purpose: {requirement.purpose}",
                f"Language: {language}",
                f"File Path: {requirement.path}",
                f"Existing content:\n{before}" if before else "",
            ]
        )
        prompt = self.render_prompt(
            "Coder: Generate Code",
            {
                "task": task_description,
                "file_path": requirement.path,
                "language": language,
                "context": context,
            },
        )
        code = extract_code_block(self.ask_streaming(prompt))
        self.add_reasoning_step(f"Generated code for: {requirement.path}")

        written = self.invoke_tool("write_file", {"path": requirement.path, "content": code})
        if written.success:
            self.add_reasoning_step(f"Wrote file: {requirement.path}")

        return CodePatch(
            file_path=requirement.path,
            before=before,
            after=code,
            description=requirement.purpose,
            reasoning=f"Generated {language} code for {requirement.path}",
        )
