"""Pure constructors that turn role outputs into versioned Artifact records.

Every ``from_*`` function assigns a fresh id, starts at version 1, computes a
one-line summary, and embeds a markdown rendering next to the structured
payload. ``apply_feedback`` returns a new record; inputs are never mutated.
"""

from __future__ import annotations

import base64
import json

from agent_pipeline.artifacts.models import (
    Artifact,
    ArtifactMetadata,
    ArtifactType,
    CodePatch,
    CodePatchContent,
    Feedback,
    ImplementationPlan,
    ImplementationPlanContent,
    PlanContent,
    ReasoningContent,
    ScreenshotContent,
    TaskPlan,
    WalkthroughContent,
    WalkthroughStep,
    WalkthroughSummary,
    utc_now,
)


def from_plan(task_id: str, agent_id: str, plan: TaskPlan) -> Artifact:
    return _build(
        ArtifactType.PLAN,
        task_id=task_id,
        agent_id=agent_id,
        content=PlanContent(plan=plan, formatted=format_task_plan(plan)),
        summary=f"Task Plan: {plan.title}",
    )


def from_implementation_plan(
    task_id: str, agent_id: str, plan: ImplementationPlan
) -> Artifact:
    return _build(
        ArtifactType.IMPLEMENTATION_PLAN,
        task_id=task_id,
        agent_id=agent_id,
        content=ImplementationPlanContent(plan=plan, formatted=format_implementation_plan(plan)),
        summary=(
            f"Implementation Plan: {len(plan.steps)} step(s), "
            f"{len(plan.file_requirements)} file(s)"
        ),
    )


def from_code_patches(task_id: str, agent_id: str, patches: list[CodePatch]) -> Artifact:
    return _build(
        ArtifactType.CODE_PATCH,
        task_id=task_id,
        agent_id=agent_id,
        content=CodePatchContent(patches=list(patches), formatted=format_code_patches(patches)),
        summary=f"Code changes: {len(patches)} file(s) modified",
    )


def from_walkthrough(task_id: str, agent_id: str, steps: list[WalkthroughStep]) -> Artifact:
    summary = summarize_walkthrough(steps)
    return _build(
        ArtifactType.WALKTHROUGH,
        task_id=task_id,
        agent_id=agent_id,
        content=WalkthroughContent(
            steps=list(steps),
            formatted=format_walkthrough(steps),
            summary=summary,
        ),
        summary=(
            f"Walkthrough: {summary.total_steps} step(s), "
            f"{summary.passed_tests} passed, {summary.failed_tests} failed"
        ),
    )


def from_reasoning_trace(task_id: str, agent_id: str, reasoning: list[str]) -> Artifact:
    return _build(
        ArtifactType.REASONING,
        task_id=task_id,
        agent_id=agent_id,
        content=ReasoningContent(steps=list(reasoning), formatted=format_reasoning(reasoning)),
        summary=f"Agent reasoning: {len(reasoning)} step(s)",
    )


def from_screenshot(
    task_id: str,
    agent_id: str,
    data: bytes,
    *,
    mime_type: str = "image/png",
    description: str = "Screenshot",
) -> Artifact:
    return _build(
        ArtifactType.SCREENSHOT,
        task_id=task_id,
        agent_id=agent_id,
        content=ScreenshotContent(
            data_base64=base64.b64encode(data).decode("ascii"),
            mime_type=mime_type,
            description=description,
            captured_at=utc_now(),
        ),
        summary=_one_line(description),
    )


def apply_feedback(artifact: Artifact, feedback: Feedback) -> Artifact:
    """Return a copy with ``feedback`` appended and the version bumped by one."""
    metadata = artifact.metadata.model_copy(
        update={"updated_at": utc_now(), "version": artifact.metadata.version + 1}
    )
    return artifact.model_copy(
        deep=True,
        update={
            "metadata": metadata,
            "feedback": [
                *(item.model_copy() for item in artifact.feedback),
                feedback.model_copy(),
            ],
        },
    )


def artifact_summary(artifact: Artifact) -> str:
    lines = [
        f"**{artifact.type.upper()}**",
        f"Created: {artifact.metadata.created_at.isoformat()}",
        f"Version: {artifact.metadata.version}",
    ]
    if artifact.metadata.summary:
        lines.append(f"Summary: {artifact.metadata.summary}")
    if artifact.feedback:
        lines.append("")
        lines.append(f"Feedback ({len(artifact.feedback)}):")
        lines.extend(f"- {item.author}: {item.comment}" for item in artifact.feedback)
    return "\n".join(lines) + "\n"


def to_markdown(artifact: Artifact) -> str:
    """Full markdown export of an artifact, including feedback."""
    parts = [
        f"# Artifact: {artifact.type}\n",
        f"**ID:** {artifact.id}",
        f"**Created:** {artifact.metadata.created_at.isoformat()}",
        f"**Version:** {artifact.metadata.version}\n",
    ]
    if artifact.metadata.summary:
        parts.append(f"## Summary\n{artifact.metadata.summary}\n")

    parts.append("## Content")
    content = artifact.content
    if isinstance(content, ScreenshotContent):
        parts.append(
            json.dumps(
                {
                    "mime_type": content.mime_type,
                    "description": content.description,
                    "captured_at": content.captured_at.isoformat(),
                    "bytes": len(base64.b64decode(content.data_base64)),
                },
                indent=2,
            )
        )
    else:
        parts.append(content.formatted)

    if artifact.feedback:
        parts.append("\n## Feedback")
        for item in artifact.feedback:
            parts.append(f"### {item.author} ({item.timestamp.isoformat()})")
            parts.append(f"{item.comment}\n")
    return "\n".join(parts)


# Markdown renderers.


def format_task_plan(plan: TaskPlan) -> str:
    lines = [f"# {plan.title}", "", plan.description, "", "## Goals"]
    lines.extend(f"- {goal}" for goal in plan.goals)
    lines += ["", "## Approach", plan.approach, "", "## Steps"]
    for index, step in enumerate(plan.steps, start=1):
        lines.append(f"{index}. **{step.title}**")
        if step.description:
            lines.append(f"   {step.description}")
        if step.dependencies:
            lines.append(f"   Dependencies: {', '.join(step.dependencies)}")
        lines.append("")
    lines += ["## Estimated Duration", plan.estimated_duration]
    return "\n".join(lines) + "\n"


def format_implementation_plan(plan: ImplementationPlan) -> str:
    lines = ["# Implementation Plan", "", "## Files to Create/Modify"]
    for requirement in plan.file_requirements:
        lines.append(f"- **{requirement.path}** ({requirement.type})")
        lines.append(f"  Purpose: {requirement.purpose}")
        if requirement.dependencies:
            lines.append(f"  Dependencies: {', '.join(requirement.dependencies)}")
    lines += ["", "## Implementation Steps"]
    for index, step in enumerate(plan.steps, start=1):
        lines.append(f"{index}. **{step.title}**")
        if step.description:
            lines.append(f"   {step.description}")
        if step.files:
            lines.append(f"   Files: {', '.join(step.files)}")
        if step.commands:
            lines.append("   Commands:")
            for command in step.commands:
                lines += ["   ```bash", f"   {command}", "   ```"]
    if plan.dependencies:
        lines += ["", "## Dependencies"]
        for dependency in plan.dependencies:
            version = f" v{dependency.version}" if dependency.version else ""
            lines.append(f"- **{dependency.name}** ({dependency.type}){version}")
    return "\n".join(lines) + "\n"


def format_code_patches(patches: list[CodePatch]) -> str:
    lines = ["# Code Changes", ""]
    for index, patch in enumerate(patches, start=1):
        lines += [
            f"## Change {index}: {patch.file_path}",
            "",
            f"**Description:** {patch.description}",
            "",
            f"**Reasoning:** {patch.reasoning}",
            "",
            "### Before",
            "```",
            patch.before,
            "```",
            "",
            "### After",
            "```",
            patch.after,
            "```",
            "",
        ]
    return "\n".join(lines)


def format_walkthrough(steps: list[WalkthroughStep]) -> str:
    lines = ["# Verification Walkthrough", ""]
    for index, step in enumerate(steps, start=1):
        lines += [
            f"## Step {index}: {step.title}",
            "",
            step.description,
            "",
            f"**Action:** {step.action}",
            f"**Expected Result:** {step.expected_result}",
            "",
        ]
        if step.test_results:
            lines.append("### Test Results")
            for result in step.test_results:
                mark = "PASS" if result.status == "pass" else result.status.upper()
                lines.append(f"- [{mark}] **{result.name}** ({result.duration_ms:.0f}ms)")
                if result.error:
                    lines.append(f"  Error: {result.error}")
            lines.append("")
    return "\n".join(lines)


def format_reasoning(reasoning: list[str]) -> str:
    lines = ["# Agent Reasoning", ""]
    lines.extend(f"{index}. {step}" for index, step in enumerate(reasoning, start=1))
    return "\n".join(lines) + "\n"


def summarize_walkthrough(steps: list[WalkthroughStep]) -> WalkthroughSummary:
    counts = {"pass": 0, "fail": 0, "skip": 0}
    for step in steps:
        for result in step.test_results:
            counts[result.status] += 1
    return WalkthroughSummary(
        total_steps=len(steps),
        passed_tests=counts["pass"],
        failed_tests=counts["fail"],
        skipped_tests=counts["skip"],
    )


def _build(
    artifact_type: ArtifactType,
    *,
    task_id: str,
    agent_id: str,
    content: object,
    summary: str,
) -> Artifact:
    now = utc_now()
    return Artifact(
        type=artifact_type,
        agent_id=agent_id,
        task_id=task_id,
        content=content,
        metadata=ArtifactMetadata(
            created_at=now,
            updated_at=now,
            version=1,
            summary=_one_line(summary),
        ),
    )


def _one_line(text: str, limit: int = 120) -> str:
    collapsed = " ".join(text.split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 3].rstrip() + "..."
