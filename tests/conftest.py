from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from agent_pipeline.config.settings import Settings
from agent_pipeline.graph.topology import ExecutionGraph
from agent_pipeline.llm.client import ChatMessage
from agent_pipeline.orchestrator import Orchestrator
from agent_pipeline.state.memory import InMemoryStateStore
from agent_pipeline.state.models import TaskView
from agent_pipeline.tools.gateway import ToolGateway
from agent_pipeline.tools.registry import build_registry
from agent_pipeline.utils.concurrency import CancellationToken

PLANNER_RESPONSE = """## Goals
- Expose a greeting function
- Keep it importable

## Approach
Write a single small module.

## Steps
1. **Create module**
   Add hello.py with a greet function
2. **Verify**
   Run the checks

## Estimated Duration
1 hour
"""

ARCHITECT_RESPONSE = """## Files to Create/Modify
- **hello.py** (create)
  Purpose: Greeting module

## Implementation Steps
1. **Write module**
   Implement greet
   Files: hello.py
   Commands: echo build; echo tests passed

## Dependencies
- **pytest** (pip) 8.0
"""

CODER_RESPONSE = """Here is the file:

```python
def greet(name):
    return f"Hello, {name}"
```
"""

DEFAULT_RESPONSES = {
    "Create a plan for the following request": PLANNER_RESPONSE,
    "create an implementation plan": ARCHITECT_RESPONSE,
    "Generate code for the following task": CODER_RESPONSE,
    "You are a QA engineer": "Checked greet with two names. All good.",
    "Review the following": "Looks fine. Overall: Good",
    "Assess the completed task": "Complete and tidy.",
}


class ScriptedModel:
    """Model client double that answers by matching a marker in the last prompt."""

    model_name = "scripted-model"

    def __init__(self, responses: dict[str, str] | None = None) -> None:
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.failures: dict[str, Exception] = {}
        self.prompts: list[str] = []

    def _respond(self, messages: list[ChatMessage]) -> str:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        for marker, error in self.failures.items():
            if marker in prompt:
                raise error
        for marker, response in self.responses.items():
            if marker in prompt:
                return response
        return "OK"

    def complete(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> str:
        return self._respond(messages)

    def stream(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> Iterator[str]:
        text = self._respond(messages)
        for start in range(0, len(text), 16):
            yield text[start : start + 16]


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        default_execution_mode="agent-assisted",
        assisted_failure_policy="lenient",
        tool_timeout_s=10.0,
        command_timeout_s=10.0,
    )


@pytest.fixture
def model() -> ScriptedModel:
    return ScriptedModel()


@pytest.fixture
def make_orchestrator(
    project_root: Path, settings: Settings, model: ScriptedModel
) -> Callable[..., Orchestrator]:
    def _make(
        *,
        graph: ExecutionGraph | None = None,
        settings_override: Settings | None = None,
        model_override: ScriptedModel | None = None,
    ) -> Orchestrator:
        active = settings_override or settings
        gateway = ToolGateway(
            registry=build_registry(project_root, command_timeout_s=active.command_timeout_s),
            timeout_s=active.tool_timeout_s,
        )
        return Orchestrator(
            store=InMemoryStateStore(),
            gateway=gateway,
            model=model_override or model,
            settings=active,
            graph=graph,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator: Callable[..., Orchestrator]) -> Orchestrator:
    return make_orchestrator()


@pytest.fixture
def new_task(project_root: Path) -> Callable[[Orchestrator], TaskView]:
    def _create(target: Orchestrator) -> TaskView:
        return target.store.create_task(
            "Build Feature", "Add a greet function", str(project_root), ["Python"]
        )

    return _create
