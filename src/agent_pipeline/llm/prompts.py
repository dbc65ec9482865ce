"""Prompt templates with ``{{ variable }}`` placeholders and the default role prompts."""

from __future__ import annotations

import json
import re
import threading
from typing import Any

from pydantic import BaseModel, Field

from agent_pipeline.errors import NotFoundError, PromptRenderError
from agent_pipeline.state.models import Role

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class PromptTemplate(BaseModel):
    id: str
    name: str
    role: Role
    description: str = ""
    template: str
    required: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    version: int = 1

    def placeholders(self) -> list[str]:
        return list(dict.fromkeys(_PLACEHOLDER.findall(self.template)))


class PromptStore:
    """Registry of prompt templates, addressable by id or by display name."""

    def __init__(self, templates: list[PromptTemplate] | None = None) -> None:
        self._templates: dict[str, PromptTemplate] = {}
        self._lock = threading.Lock()
        for template in default_templates() if templates is None else templates:
            self.register(template)

    def register(self, template: PromptTemplate) -> None:
        with self._lock:
            self._templates[template.id] = template

    def get_template(self, template_id: str) -> PromptTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    def get_template_by_name(self, name: str) -> PromptTemplate:
        for template in self._templates.values():
            if template.name == name:
                return template
        raise NotFoundError("template", name)

    def list_templates(self, role: Role | str | None = None) -> list[PromptTemplate]:
        templates = list(self._templates.values())
        if role is None:
            return templates
        return [template for template in templates if template.role == role]

    def render(self, template_id: str, variables: dict[str, Any]) -> str:
        template = self.get_template(template_id)
        missing = [name for name in template.required if name not in variables]
        if missing:
            raise PromptRenderError(
                f"Template {template.id} is missing variables: {', '.join(missing)}"
            )

        def _substitute(match: re.Match[str]) -> str:
            return _stringify(variables.get(match.group(1), ""))

        return _PLACEHOLDER.sub(_substitute, template.template)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json(indent=2)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return ", ".join(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def default_templates() -> list[PromptTemplate]:
    return [
        PromptTemplate(
            id="planner-task-breakdown",
            name="Planner: Task Breakdown",
            role=Role.PLANNER,
            description="Break down a user request into a high-level task plan",
            template="""You are an expert software architect. Create a plan for the following request.

User Request: {{ user_request }}

Project Context:
- Tech Stack: {{ tech_stack }}
- Current Structure: {{ project_structure }}
- Existing Patterns: {{ existing_patterns }}

Respond in markdown with exactly these sections:
## Goals
- one bullet per goal
## Approach
A short paragraph.
## Steps
1. **Step title**
   Step description
## Estimated Duration
A single line.""",
            required=["user_request", "tech_stack"],
            tags=["planner", "planning", "task-breakdown"],
        ),
        PromptTemplate(
            id="architect-implementation-plan",
            name="Architect: Implementation Plan",
            role=Role.ARCHITECT,
            description="Create a detailed implementation plan from a task plan",
            template="""You are an expert software architect. Based on the task plan below, create an implementation plan.

Task Plan:
{{ task_plan }}

Project Context:
- Tech Stack: {{ tech_stack }}
- Current Structure: {{ project_structure }}

Respond in markdown with exactly these sections:
## Files to Create/Modify
- **relative/path.ext** (create|modify|delete)
  Purpose: what the file is for
## Implementation Steps
1. **Step title**
   Step description
   Files: comma separated paths
   Commands: semicolon separated shell commands
## Dependencies
- **name** (pip|npm|system|other) v1.0""",
            required=["task_plan", "tech_stack"],
            tags=["architect", "planning", "implementation"],
        ),
        PromptTemplate(
            id="coder-generate-code",
            name="Coder: Generate Code",
            role=Role.CODER,
            description="Generate code for a specific file",
            template="""You are an expert software developer. Generate code for the following task:

Task: {{ task }}
File: {{ file_path }}
Language: {{ language }}

Requirements:
- Follow the existing code style and patterns
- Include proper error handling
- Ensure the code is production-ready

Context:
{{ context }}

Return the complete file content in a single fenced code block.""",
            required=["task", "file_path", "language"],
            tags=["coder", "code-generation"],
        ),
        PromptTemplate(
            id="tester-verify-implementation",
            name="Tester: Verify Implementation",
            role=Role.TESTER,
            description="Verify that the implementation meets requirements",
            template="""You are a QA engineer. Verify that the implementation meets the requirements.

Requirements:
{{ requirements }}

Implementation:
{{ implementation }}

List the test cases, expected results, and edge cases you checked.""",
            required=["requirements", "implementation"],
            tags=["tester", "testing", "verification"],
        ),
        PromptTemplate(
            id="reviewer-code-review",
            name="Reviewer: Code Review",
            role=Role.REVIEWER,
            description="Review one file for quality and best practices",
            template="""You are a senior code reviewer. Review the following {{ language }} file.

File: {{ file_path }}

```
{{ content }}
```

Provide a concise review with issues found, suggestions, and an overall assessment
(Good / Needs Improvement / Critical Issues).""",
            required=["file_path", "content"],
            tags=["reviewer", "code-review"],
        ),
        PromptTemplate(
            id="reviewer-overall-assessment",
            name="Reviewer: Overall Assessment",
            role=Role.REVIEWER,
            description="Overall quality assessment of a completed task",
            template="""You are a senior software architect. Assess the completed task.

Task: {{ task }}

Generated Artifacts:
{{ artifact_counts }}

Assess completeness, code quality, test coverage, and documentation, then give recommendations.""",
            required=["task"],
            tags=["reviewer", "assessment"],
        ),
    ]
