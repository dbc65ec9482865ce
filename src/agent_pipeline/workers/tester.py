"""Tester role: run build and test commands, then verify against the request."""

from __future__ import annotations

from agent_pipeline.artifacts.builder import from_walkthrough
from agent_pipeline.artifacts.models import ImplementationPlan, TestResult, WalkthroughStep
from agent_pipeline.state.models import AgentStatus, Role, TaskStatus
from agent_pipeline.workers.base import BaseWorker

_TEST_MARKERS = ("test", "pytest", "unittest", "jest", "vitest")


def split_commands(plan: ImplementationPlan) -> tuple[list[str], list[str]]:
    """Separate the plan's commands into (build, test) lists, keeping order."""
    build: list[str] = []
    test: list[str] = []
    for step in plan.steps:
        for command in step.commands:
            bucket = test if any(marker in command.lower() for marker in _TEST_MARKERS) else build
            if command not in bucket:
                bucket.append(command)
    return build, test


class TesterWorker(BaseWorker):
    role = Role.TESTER

    def run(self) -> None:
        self.update_status(AgentStatus.EXECUTING, 10)
        self.add_reasoning_step("Starting verification and testing phase")

        task = self.task()
        if task.implementation_plan is None:
            raise RuntimeError("Implementation plan not found. Coder agent must execute first.")

        build_commands, test_commands = split_commands(task.implementation_plan)
        steps = [self._build_step(build_commands)]
        self.update_status(AgentStatus.EXECUTING, 40)
        steps.append(self._test_step(test_commands))
        self.update_status(AgentStatus.EXECUTING, 70)
        steps.append(self._functionality_step(task.description, test_commands))
        self.add_reasoning_step(f"Created {len(steps)} verification steps")

        self.add_artifact(from_walkthrough(self.task_id, self.agent_id, steps))

        all_passed = all(
            result.status == "pass" for step in steps for result in step.test_results
        )
        self.update_task(TaskStatus.COMPLETE if all_passed else TaskStatus.VERIFYING, 80)
        self.complete()

    def _build_step(self, commands: list[str]) -> WalkthroughStep:
        self.add_reasoning_step("Creating build verification step")
        results = [
            self._run("execute_command", {"command": command}, command) for command in commands
        ]
        if not results:
            results = [
                TestResult(name="Build/Compile", status="skip", error="No build command declared")
            ]
        return WalkthroughStep(
            title="Build and Compile",
            description="Verify that the code compiles without errors",
            action="Run build command",
            expected_result="Build completes successfully without errors",
            test_results=results,
        )

    def _test_step(self, commands: list[str]) -> WalkthroughStep:
        self.add_reasoning_step("Creating test execution step")
        results = [
            self._run("run_tests", {"test_command": command}, command) for command in commands
        ]
        if not results:
            results = [
                TestResult(name="Unit Tests", status="skip", error="No test command declared")
            ]
        return WalkthroughStep(
            title="Run Tests",
            description="Execute test suite to verify functionality",
            action="Run test command",
            expected_result="All tests pass",
            test_results=results,
        )

    def _functionality_step(self, requirements: str, test_commands: list[str]) -> WalkthroughStep:
        self.add_reasoning_step("Creating functionality verification step")
        implementation = "Code has been generated"
        if test_commands:
            implementation += f" and tests were run with: {'; '.join(test_commands)}"
        prompt = self.render_prompt(
            "Tester: Verify Implementation",
            {"requirements": requirements, "implementation": implementation},
        )
        verification = self.ask(prompt)
        return WalkthroughStep(
            title="Verify Functionality",
            description="Verify that the implementation meets all requirements",
            action="Review implementation against requirements",
            expected_result="Implementation meets all specified requirements",
            test_results=[
                TestResult(name="Functionality Verification", status="pass", output=verification)
            ],
        )

    def _run(self, tool_name: str, params: dict[str, str], name: str) -> TestResult:
        result = self.invoke_tool(tool_name, params)
        if not result.success:
            return TestResult(
                name=name, status="fail", duration_ms=result.duration_ms, error=result.error
            )
        output = result.output or {}
        exit_code = output.get("exit_code", 1)
        return TestResult(
            name=name,
            status="pass" if exit_code == 0 else "fail",
            duration_ms=result.duration_ms,
            error=None if exit_code == 0 else (output.get("stderr") or f"exit code {exit_code}"),
            output=output.get("stdout"),
        )
