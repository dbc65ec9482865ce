from __future__ import annotations

from agent_pipeline.artifacts.models import ImplementationPlan, ImplementationStep
from agent_pipeline.workers.parsing import (
    default_entrypoint,
    extract_code_block,
    language_for_path,
    parse_implementation_plan,
    parse_task_plan,
    split_sections,
)
from agent_pipeline.workers.tester import split_commands


def test_split_sections_lowercases_headings() -> None:
    sections = split_sections("intro\n## Goals\n- a\n## Estimated Duration\n2 days\n")

    assert sections == {"goals": "- a", "estimated duration": "2 days"}


def test_parse_task_plan_reads_goals_and_steps() -> None:
    response = (
        "## Goals\n- Ship the endpoint\n- Keep it fast\n"
        "## Approach\nIncremental.\n"
        "## Steps\n1. **Design**: sketch the API\n   with examples\n2. Build\n"
        "## Estimated Duration\n3 hours\n"
    )

    plan = parse_task_plan(response, "Export")

    assert plan.title == "Plan: Export"
    assert plan.goals == ["Ship the endpoint", "Keep it fast"]
    assert plan.approach == "Incremental."
    assert [step.title for step in plan.steps] == ["Design", "Build"]
    assert plan.steps[0].description == "sketch the API\nwith examples"
    assert plan.estimated_duration == "3 hours"


def test_parse_task_plan_falls_back_on_unstructured_text() -> None:
    plan = parse_task_plan("Just do it.", "Export")

    assert plan.goals == ["Complete the requested task"]
    assert [step.title for step in plan.steps] == ["Execute Task"]
    assert plan.estimated_duration == "To be determined"


def test_parse_implementation_plan_reads_files_steps_and_dependencies() -> None:
    response = (
        "## Files to Create/Modify\n"
        "- **src/app.py** (create)\n  Purpose: Entry point\n"
        "- `src/old.py` (delete): obsolete\n"
        "## Implementation Steps\n"
        "1. **Scaffold**\n   Create the app\n   Files: src/app.py, src/util.py\n"
        "   Commands: pip install -e .; pytest -q\n"
        "## Dependencies\n- **fastapi** (pip) 0.110\n- **jq** (brew)\n"
    )

    plan = parse_implementation_plan(response, "task-1")

    assert [(item.path, item.type, item.purpose) for item in plan.file_requirements] == [
        ("src/app.py", "create", "Entry point"),
        ("src/old.py", "delete", "obsolete"),
    ]
    assert plan.steps[0].files == ["src/app.py", "src/util.py"]
    assert plan.steps[0].commands == ["pip install -e .", "pytest -q"]
    assert [(dep.name, dep.type, dep.version) for dep in plan.dependencies] == [
        ("fastapi", "pip", "0.110"),
        ("jq", "other", None),
    ]


def test_parse_implementation_plan_defaults_to_entrypoint() -> None:
    plan = parse_implementation_plan("nothing useful", "task-1", default_path="src/index.ts")

    assert [item.path for item in plan.file_requirements] == ["src/index.ts"]
    assert plan.steps[0].title == "Implement src/index.ts"


def test_extract_code_block_prefers_fenced_content() -> None:
    assert extract_code_block("text\n```python\nx = 1\n```\nmore") == "x = 1"
    assert extract_code_block("  x = 2  ") == "x = 2"


def test_language_and_entrypoint_helpers() -> None:
    assert language_for_path("src/app.tsx") == "TypeScript"
    assert language_for_path("Makefile") == "Text"
    assert default_entrypoint(["TypeScript", "React"]) == "src/index.ts"
    assert default_entrypoint(["Node.js"]) == "src/index.js"
    assert default_entrypoint([]) == "src/main.py"


def test_split_commands_separates_tests_from_build() -> None:
    plan = ImplementationPlan(
        task_id="t",
        steps=[
            ImplementationStep(title="a", commands=["npm run build", "npm test"]),
            ImplementationStep(title="b", commands=["npm run build", "pytest -q"]),
        ],
    )

    assert split_commands(plan) == (["npm run build"], ["npm test", "pytest -q"])
