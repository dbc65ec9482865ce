"""Tool specifications, default catalog, and the invocation gateway."""

from agent_pipeline.tools.gateway import ToolGateway
from agent_pipeline.tools.registry import ToolCategory, ToolSpec, build_registry
from agent_pipeline.tools.schemas import ParameterSpec, ToolInvocationResult

__all__ = [
    "ParameterSpec",
    "ToolCategory",
    "ToolGateway",
    "ToolInvocationResult",
    "ToolSpec",
    "build_registry",
]
