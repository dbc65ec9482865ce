"""Multi-role agent execution engine."""

from agent_pipeline.events import EventBus, EventType, ExecutionEvent
from agent_pipeline.graph import Edge, ExecutionGraph
from agent_pipeline.orchestrator import Orchestrator, build_orchestrator
from agent_pipeline.state import InMemoryStateStore
from agent_pipeline.tools import ToolGateway
from agent_pipeline.utils.concurrency import CancellationToken

__all__ = [
    "CancellationToken",
    "Edge",
    "EventBus",
    "EventType",
    "ExecutionEvent",
    "ExecutionGraph",
    "InMemoryStateStore",
    "Orchestrator",
    "ToolGateway",
    "build_orchestrator",
]
