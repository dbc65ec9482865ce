from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_pipeline.artifacts.builder import (
    apply_feedback,
    artifact_summary,
    from_code_patches,
    from_implementation_plan,
    from_plan,
    from_reasoning_trace,
    from_screenshot,
    from_walkthrough,
    to_markdown,
)
from agent_pipeline.artifacts.models import (
    Artifact,
    ArtifactType,
    CodePatch,
    Feedback,
    FileRequirement,
    ImplementationPlan,
    ReasoningContent,
    TaskPlan,
    TaskStep,
    TestResult,
    WalkthroughStep,
)


def _plan() -> TaskPlan:
    return TaskPlan(
        title="Plan: Build Feature",
        goals=["Ship it"],
        approach="Small steps",
        steps=[TaskStep(title="Write code", description="Do the work")],
    )


def test_every_builder_starts_at_version_one_with_summary() -> None:
    artifacts = [
        from_plan("t", "a", _plan()),
        from_implementation_plan(
            "t",
            "a",
            ImplementationPlan(task_id="t", file_requirements=[FileRequirement(path="x.py")]),
        ),
        from_code_patches("t", "a", [CodePatch(file_path="x.py", after="x = 1")]),
        from_walkthrough("t", "a", [WalkthroughStep(title="Run")]),
        from_reasoning_trace("t", "a", ["thought"]),
        from_screenshot("t", "a", b"\x89PNG", description="Home page"),
    ]

    assert [artifact.type for artifact in artifacts] == [
        ArtifactType.PLAN,
        ArtifactType.IMPLEMENTATION_PLAN,
        ArtifactType.CODE_PATCH,
        ArtifactType.WALKTHROUGH,
        ArtifactType.REASONING,
        ArtifactType.SCREENSHOT,
    ]
    assert all(artifact.metadata.version == 1 for artifact in artifacts)
    assert all(artifact.metadata.summary for artifact in artifacts)
    assert len({artifact.id for artifact in artifacts}) == len(artifacts)


def test_plan_artifact_embeds_markdown() -> None:
    artifact = from_plan("t", "a", _plan())

    assert artifact.metadata.summary == "Task Plan: Plan: Build Feature"
    assert "Ship it" in artifact.content.formatted
    assert "Write code" in artifact.content.formatted


def test_walkthrough_summary_counts_results() -> None:
    steps = [
        WalkthroughStep(
            title="Tests",
            test_results=[
                TestResult(name="a", status="pass"),
                TestResult(name="b", status="fail", error="boom"),
                TestResult(name="c", status="skip"),
            ],
        )
    ]

    artifact = from_walkthrough("t", "a", steps)

    summary = artifact.content.summary
    assert (summary.total_steps, summary.passed_tests, summary.failed_tests) == (1, 1, 1)
    assert summary.skipped_tests == 1
    assert artifact.metadata.summary == "Walkthrough: 1 step(s), 1 passed, 1 failed"


def test_apply_feedback_returns_new_version_without_mutating_input() -> None:
    original = from_reasoning_trace("t", "a", ["thought"])
    snapshot = original.model_copy(deep=True)
    feedback = Feedback(artifact_id=original.id, author="ana", comment="more detail")

    revised = apply_feedback(original, feedback)

    assert original == snapshot
    assert revised.metadata.version == 2
    assert revised.metadata.updated_at >= original.metadata.updated_at
    assert [item.comment for item in revised.feedback] == ["more detail"]
    assert revised.id == original.id


def test_content_must_match_artifact_type() -> None:
    with pytest.raises(ValidationError):
        Artifact(
            type=ArtifactType.PLAN,
            agent_id="a",
            task_id="t",
            content=ReasoningContent(steps=[], formatted=""),
        )


def test_artifact_json_round_trip_keeps_the_payload_type() -> None:
    artifact = from_code_patches("t", "a", [CodePatch(file_path="x.py", after="x = 1")])

    restored = Artifact.model_validate_json(artifact.model_dump_json())

    assert restored == artifact
    assert restored.content.patches[0].file_path == "x.py"


def test_summary_and_markdown_include_feedback() -> None:
    artifact = apply_feedback(
        from_plan("t", "a", _plan()),
        Feedback(artifact_id="x", author="ana", comment="looks good"),
    )

    card = artifact_summary(artifact)
    document = to_markdown(artifact)

    assert "**PLAN**" in card and "ana: looks good" in card
    assert document.startswith("# Artifact: plan")
    assert "## Feedback" in document and "looks good" in document


def test_screenshot_markdown_reports_size_not_bytes() -> None:
    document = to_markdown(from_screenshot("t", "a", b"12345", mime_type="image/jpeg"))

    assert '"bytes": 5' in document
    assert '"mime_type": "image/jpeg"' in document
