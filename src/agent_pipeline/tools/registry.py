"""Tool specifications and the default project-scoped catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import BaseModel

from agent_pipeline.state.models import Role
from agent_pipeline.tools import builtin
from agent_pipeline.tools.schemas import ParameterSpec, build_input_model


# Shell tools stop their own subprocess; the gateway wait only has to outlast it.
_SHELL_GRACE_S = 5.0


class ToolCategory(StrEnum):
    FILE = "file"
    TERMINAL = "terminal"
    BROWSER = "browser"
    DATABASE = "database"
    CODE = "code"
    OTHER = "other"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    category: ToolCategory
    parameters: Mapping[str, ParameterSpec]
    fn: Callable[[dict[str, Any]], Any]
    allowed_roles: frozenset[Role] | None = None
    timeout_s: float | None = None
    input_model: type[BaseModel] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_model", build_input_model(self.name, self.parameters))

    def permits(self, role: Role | str | None) -> bool:
        if self.allowed_roles is None or role is None:
            return True
        return role in self.allowed_roles

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": str(self.category),
            "parameters": {
                name: spec.model_dump(mode="json") for name, spec in self.parameters.items()
            },
            "allowed_roles": (
                sorted(str(role) for role in self.allowed_roles)
                if self.allowed_roles is not None
                else None
            ),
        }


def build_registry(
    project_root: Path | str,
    *,
    command_timeout_s: float = 120.0,
) -> dict[str, ToolSpec]:
    root = Path(project_root)
    return {
        "read_file": ToolSpec(
            name="read_file",
            description="Read the contents of a file",
            category=ToolCategory.FILE,
            parameters={
                "path": ParameterSpec(type="string", required=True, description="Path to the file"),
            },
            fn=partial(builtin.read_file, root),
        ),
        "write_file": ToolSpec(
            name="write_file",
            description="Write contents to a file",
            category=ToolCategory.FILE,
            parameters={
                "path": ParameterSpec(type="string", required=True, description="Path to the file"),
                "content": ParameterSpec(type="string", required=True, description="File contents"),
            },
            fn=partial(builtin.write_file, root),
        ),
        "list_files": ToolSpec(
            name="list_files",
            description="List files in a directory",
            category=ToolCategory.FILE,
            parameters={
                "path": ParameterSpec(type="string", required=True, description="Directory path"),
                "recursive": ParameterSpec(
                    type="boolean", default=False, description="Descend into subdirectories"
                ),
            },
            fn=partial(builtin.list_files, root),
        ),
        "search_codebase": ToolSpec(
            name="search_codebase",
            description="Search the codebase for a regular expression",
            category=ToolCategory.CODE,
            parameters={
                "pattern": ParameterSpec(
                    type="string", required=True, description="Search pattern"
                ),
                "path": ParameterSpec(type="string", default=".", description="Search root"),
                "max_results": ParameterSpec(type="number", default=100),
            },
            fn=partial(builtin.search_codebase, root),
        ),
        "analyze_code": ToolSpec(
            name="analyze_code",
            description="Analyze code for patterns and issues",
            category=ToolCategory.CODE,
            parameters={
                "file_path": ParameterSpec(
                    type="string", required=True, description="Path to code file"
                ),
            },
            fn=partial(builtin.analyze_code, root),
        ),
        "execute_command": ToolSpec(
            name="execute_command",
            description="Execute a shell command",
            category=ToolCategory.TERMINAL,
            parameters={
                "command": ParameterSpec(
                    type="string", required=True, description="Command to execute"
                ),
                "cwd": ParameterSpec(type="string", description="Working directory"),
            },
            fn=partial(builtin.execute_command, root, timeout_s=command_timeout_s),
            timeout_s=command_timeout_s + _SHELL_GRACE_S,
            allowed_roles=frozenset({Role.CODER, Role.TESTER}),
        ),
        "run_tests": ToolSpec(
            name="run_tests",
            description="Run the project's test suite",
            category=ToolCategory.TERMINAL,
            parameters={
                "test_command": ParameterSpec(
                    type="string", required=True, description="Test command to run"
                ),
            },
            fn=partial(builtin.run_tests, root, timeout_s=command_timeout_s),
            timeout_s=command_timeout_s + _SHELL_GRACE_S,
            allowed_roles=frozenset({Role.TESTER}),
        ),
    }
