"""Artifact records and the pure builders that produce them."""

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
from agent_pipeline.artifacts.models import Artifact, ArtifactType, Feedback

__all__ = [
    "Artifact",
    "ArtifactType",
    "Feedback",
    "apply_feedback",
    "artifact_summary",
    "from_code_patches",
    "from_implementation_plan",
    "from_plan",
    "from_reasoning_trace",
    "from_screenshot",
    "from_walkthrough",
    "to_markdown",
]
