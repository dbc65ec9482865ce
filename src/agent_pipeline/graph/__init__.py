"""Role execution graph and its LangGraph compilation."""

from agent_pipeline.graph.topology import Edge, ExecutionGraph
from agent_pipeline.graph.workflow import build_workflow

__all__ = ["Edge", "ExecutionGraph", "build_workflow"]
