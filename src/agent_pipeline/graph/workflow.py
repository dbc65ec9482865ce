"""LangGraph workflow assembly for an ExecutionGraph."""

from __future__ import annotations

from typing import Callable

from langgraph.graph import END, StateGraph

from agent_pipeline.graph.state import RoleOutcome, RunState
from agent_pipeline.graph.topology import ExecutionGraph
from agent_pipeline.state.models import Role

RoleRunner = Callable[[Role], RoleOutcome]


def build_workflow(graph: ExecutionGraph, run_role: RoleRunner):
    """Compile ``graph`` into a LangGraph state machine with one node per role.

    ``run_role`` executes a single role and returns the task as it stands
    afterwards; routing evaluates the outgoing edges against that task.
    """
    workflow = StateGraph(RunState)

    for role in graph.roles():
        workflow.add_node(role.value, _role_node(graph, role, run_role))

    workflow.set_entry_point(graph.entry.value)

    for role in graph.roles():
        path_map = {edge.target.value: edge.target.value for edge in graph.edges_from(role)}
        path_map["done"] = END
        workflow.add_conditional_edges(role.value, _route, path_map)

    return workflow.compile()


def _role_node(graph: ExecutionGraph, role: Role, run_role: RoleRunner):
    def _run(state: RunState) -> RunState:
        outcome = run_role(role)
        next_role = graph.next_role(role, outcome.task)
        update: RunState = {
            "current_role": role.value,
            "next_role": next_role.value if next_role is not None else None,
            "steps": state.get("steps", 0) + 1,
        }
        if outcome.failed:
            update["failed_roles"] = [*state.get("failed_roles", []), role.value]
        else:
            update["completed_roles"] = [*state.get("completed_roles", []), role.value]
        return update

    return _run


def _route(state: RunState) -> str:
    return state.get("next_role") or "done"
