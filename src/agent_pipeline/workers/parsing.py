"""Turn markdown model responses into plan and patch payloads."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from agent_pipeline.artifacts.models import (
    Dependency,
    FileRequirement,
    ImplementationPlan,
    ImplementationStep,
    TaskPlan,
    TaskStep,
)

_HEADING = re.compile(r"^##\s+(.+?)\s*$", re.M)
_NUMBERED = re.compile(r"^\s*\d+[.)]\s*(.+)$")
_BULLET = re.compile(r"^\s*[-*]\s+(.+)$")
_FILE_LINE = re.compile(
    r"^\s*[-*]\s*\*{0,2}`?([^*()`\s]+)`?\*{0,2}\s*\((create|modify|delete)\)\s*(?:[:\-]\s*(.*))?$",
    re.I,
)
_DEPENDENCY_LINE = re.compile(
    r"^\s*[-*]\s*\*{0,2}([^*()\s]+)\*{0,2}\s*(?:\((\w+)\))?\s*(?:v?(\S+))?"
)
_CODE_BLOCK = re.compile(r"```[\w+\-#.]*[ \t]*\n(.*?)```", re.S)

_LANGUAGES = {
    "py": "Python",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "java": "Java",
    "go": "Go",
    "rs": "Rust",
    "rb": "Ruby",
    "sh": "Bash",
    "json": "JSON",
    "yaml": "YAML",
    "yml": "YAML",
    "toml": "TOML",
    "html": "HTML",
    "css": "CSS",
    "sql": "SQL",
    "md": "Markdown",
}
_DEPENDENCY_TYPES = {"npm", "pip", "system", "other"}


def split_sections(markdown: str) -> dict[str, str]:
    """Map lower-cased ``## Heading`` titles to the text beneath them."""
    sections: dict[str, str] = {}
    matches = list(_HEADING.finditer(markdown))
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(markdown)
        sections[match.group(1).strip().lower()] = markdown[match.end() : end].strip()
    return sections


def parse_task_plan(response: str, title: str) -> TaskPlan:
    sections = split_sections(response)
    goals = _bullets(sections.get("goals", "")) or ["Complete the requested task"]
    steps = [
        TaskStep(title=step_title, description=description)
        for step_title, description, _ in _numbered_items(sections.get("steps", ""))
    ]
    if not steps:
        steps = [
            TaskStep(
                title="Execute Task",
                description="Execute the requested task according to requirements",
            )
        ]
    return TaskPlan(
        title=f"Plan: {title}",
        description=f"Task plan for: {title}",
        goals=goals,
        approach=sections.get("approach") or "Follow best practices and requirements",
        steps=steps,
        estimated_duration=sections.get("estimated duration") or "To be determined",
    )


def parse_implementation_plan(
    response: str, task_id: str, *, default_path: str = "src/main.py"
) -> ImplementationPlan:
    sections = split_sections(response)
    files = _file_requirements(sections.get("files to create/modify", ""))
    if not files:
        files = [FileRequirement(path=default_path, purpose="Main implementation file")]

    steps: list[ImplementationStep] = []
    raw_steps = _numbered_items(sections.get("implementation steps", ""))
    for step_title, description, extras in raw_steps:
        steps.append(
            ImplementationStep(
                title=step_title,
                description=description,
                files=_split(extras.get("files", ""), ","),
                commands=_split(extras.get("commands", ""), ";"),
            )
        )
    if not steps:
        steps = [
            ImplementationStep(
                title=f"Implement {requirement.path}",
                description=requirement.purpose,
                files=[requirement.path],
            )
            for requirement in files
        ]

    return ImplementationPlan(
        task_id=task_id,
        steps=steps,
        file_requirements=files,
        dependencies=_dependencies(sections.get("dependencies", "")),
    )


def extract_code_block(response: str) -> str:
    match = _CODE_BLOCK.search(response)
    if match:
        return match.group(1).strip("\n")
    return response.strip()


def language_for_path(path: str) -> str:
    return _LANGUAGES.get(PurePosixPath(path).suffix.lstrip(".").lower(), "Text")


def _bullets(text: str) -> list[str]:
    items = []
    for line in text.splitlines():
        match = _BULLET.match(line)
        if match:
            items.append(_strip_emphasis(match.group(1)))
    return items


def _numbered_items(text: str) -> list[tuple[str, str, dict[str, str]]]:
    """Numbered list items as (title, description, labelled extras)."""
    items: list[tuple[str, list[str], dict[str, str]]] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        match = _NUMBERED.match(line)
        if match:
            head = _strip_emphasis(match.group(1))
            title, _, inline = head.partition(": ")
            items.append((title.strip(), [inline.strip()] if inline.strip() else [], {}))
            continue
        if not items:
            continue
        label, _, value = line.strip().partition(":")
        if label.lower() in {"files", "commands"} and value:
            items[-1][2][label.lower()] = value.strip()
        else:
            items[-1][1].append(line.strip())
    return [(title, "\n".join(lines), extras) for title, lines, extras in items]


def _file_requirements(text: str) -> list[FileRequirement]:
    files: list[FileRequirement] = []
    for line in text.splitlines():
        match = _FILE_LINE.match(line)
        if match:
            files.append(
                FileRequirement(
                    path=match.group(1),
                    type=match.group(2).lower(),
                    purpose=(match.group(3) or "").strip() or "Implementation file",
                )
            )
            continue
        stripped = line.strip()
        if files and stripped.lower().startswith("purpose:"):
            files[-1].purpose = stripped.split(":", 1)[1].strip()
        elif files and stripped.lower().startswith("dependencies:"):
            files[-1].dependencies = _split(stripped.split(":", 1)[1], ",")
    return files


def _dependencies(text: str) -> list[Dependency]:
    dependencies = []
    for line in text.splitlines():
        match = _DEPENDENCY_LINE.match(line)
        if not match:
            continue
        kind = (match.group(2) or "other").lower()
        dependencies.append(
            Dependency(
                name=match.group(1),
                type=kind if kind in _DEPENDENCY_TYPES else "other",
                version=match.group(3),
            )
        )
    return dependencies


def _split(value: str, separator: str) -> list[str]:
    return [part.strip().strip("`") for part in value.split(separator) if part.strip()]


def _strip_emphasis(text: str) -> str:
    return text.replace("**", "").strip()


def default_entrypoint(tech_stack: list[str]) -> str:
    stack = " ".join(tech_stack).lower()
    if "typescript" in stack:
        return "src/index.ts"
    if "javascript" in stack or "node" in stack:
        return "src/index.js"
    return "src/main.py"
