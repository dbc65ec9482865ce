from __future__ import annotations

import pytest

from agent_pipeline.artifacts.models import TaskPlan
from agent_pipeline.errors import NotFoundError, PromptRenderError
from agent_pipeline.llm.prompts import PromptStore, PromptTemplate
from agent_pipeline.state.models import Role


def test_default_templates_cover_every_role() -> None:
    store = PromptStore()

    assert {template.role for template in store.list_templates()} == set(Role)
    assert [t.name for t in store.list_templates(Role.REVIEWER)] == [
        "Reviewer: Code Review",
        "Reviewer: Overall Assessment",
    ]


def test_render_substitutes_and_stringifies_values() -> None:
    store = PromptStore()
    template = store.get_template_by_name("Planner: Task Breakdown")

    rendered = store.render(
        template.id,
        {"user_request": "Add login", "tech_stack": ["Python", "FastAPI"]},
    )

    assert "User Request: Add login" in rendered
    assert "Tech Stack: Python, FastAPI" in rendered
    assert "{{" not in rendered


def test_render_serialises_models() -> None:
    store = PromptStore()
    template = store.get_template_by_name("Architect: Implementation Plan")

    rendered = store.render(
        template.id, {"task_plan": TaskPlan(title="Plan: Login"), "tech_stack": "Python"}
    )

    assert '"title": "Plan: Login"' in rendered


def test_missing_required_variable_raises() -> None:
    store = PromptStore()

    with pytest.raises(PromptRenderError, match="user_request"):
        store.render("planner-task-breakdown", {"tech_stack": "Python"})


def test_unknown_template_raises_not_found() -> None:
    store = PromptStore(templates=[])

    with pytest.raises(NotFoundError):
        store.get_template("planner-task-breakdown")
    with pytest.raises(NotFoundError):
        store.get_template_by_name("Planner: Task Breakdown")


def test_registered_template_replaces_by_id() -> None:
    store = PromptStore(templates=[])
    store.register(
        PromptTemplate(id="greet", name="Greet", role=Role.PLANNER, template="Hi {{ name }}")
    )
    store.register(
        PromptTemplate(id="greet", name="Greet", role=Role.PLANNER, template="Hello {{name}}!")
    )

    assert store.render("greet", {"name": "Ana"}) == "Hello Ana!"
    assert store.get_template("greet").placeholders() == ["name"]
