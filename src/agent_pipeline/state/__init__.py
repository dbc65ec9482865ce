"""Task/agent state storage and checkpoint backends."""

from agent_pipeline.state.base import CheckpointStore, StateStore, TaskListener
from agent_pipeline.state.memory import InMemoryCheckpointStore, InMemoryStateStore
from agent_pipeline.state.postgres import PostgresCheckpointStore

__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "InMemoryStateStore",
    "PostgresCheckpointStore",
    "StateStore",
    "TaskListener",
]
