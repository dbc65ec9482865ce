"""Directed graph of roles with optional edge predicates over the task view."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from agent_pipeline.state.models import Role, TaskView

EdgePredicate = Callable[[TaskView], bool]

DEFAULT_CHAIN = (Role.PLANNER, Role.ARCHITECT, Role.CODER, Role.TESTER, Role.REVIEWER)


@dataclass(frozen=True)
class Edge:
    source: Role
    target: Role
    predicate: EdgePredicate | None = None

    def applies(self, task: TaskView) -> bool:
        return self.predicate is None or bool(self.predicate(task))


class ExecutionGraph:
    """Entry role plus ordered outgoing edges per role.

    Edge order is significant: ``next_role`` takes the first edge whose
    predicate is absent or true. A role without a qualifying edge ends the run.
    """

    def __init__(self, entry: Role | str = Role.PLANNER, edges: Iterable[Edge] = ()) -> None:
        self.entry = Role(entry)
        self._edges: dict[Role, list[Edge]] = {}
        for edge in edges:
            self.add_edge(edge)

    @classmethod
    def default(cls) -> ExecutionGraph:
        return cls.chain(DEFAULT_CHAIN)

    @classmethod
    def chain(cls, roles: Iterable[Role | str]) -> ExecutionGraph:
        ordered = [Role(role) for role in roles]
        if not ordered:
            raise ValueError("A chain needs at least one role")
        graph = cls(entry=ordered[0])
        for source, target in zip(ordered, ordered[1:]):
            graph.connect(source, target)
        return graph

    def add_edge(self, edge: Edge) -> None:
        self._edges.setdefault(Role(edge.source), []).append(edge)

    def connect(
        self,
        source: Role | str,
        target: Role | str,
        predicate: EdgePredicate | None = None,
    ) -> ExecutionGraph:
        self.add_edge(Edge(Role(source), Role(target), predicate))
        return self

    def edges_from(self, role: Role | str) -> list[Edge]:
        return list(self._edges.get(Role(role), []))

    def roles(self) -> list[Role]:
        seen: dict[Role, None] = {self.entry: None}
        for source, edges in self._edges.items():
            seen.setdefault(source, None)
            for edge in edges:
                seen.setdefault(edge.target, None)
        return list(seen)

    def next_role(self, role: Role | str, task: TaskView) -> Role | None:
        for edge in self._edges.get(Role(role), []):
            if edge.applies(task):
                return edge.target
        return None
