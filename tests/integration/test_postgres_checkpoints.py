from __future__ import annotations

from uuid import uuid4

from agent_pipeline.state.memory import InMemoryStateStore
from agent_pipeline.state.models import Role, TaskStatus
from agent_pipeline.state.postgres import PostgresCheckpointStore


def test_checkpoints_survive_a_new_store_instance(postgres_url: str) -> None:
    checkpoints = PostgresCheckpointStore(postgres_url)
    checkpoints.migrate()
    store = InMemoryStateStore(checkpoints)
    task = store.create_task("Persisted task", "Check round trip", ".", ["Python"])
    agent = store.create_agent(task.id, Role.PLANNER, "scripted-model")
    store.update_task(task.id, status=TaskStatus.PLANNING, progress=20)
    checkpoint_id = store.create_checkpoint(task.id, f"checkpoint-{uuid4().hex}")
    before = store.get_task(task.id)

    reloaded = PostgresCheckpointStore(postgres_url)
    restored_store = InMemoryStateStore(reloaded)
    restored_task_id = restored_store.restore_checkpoint(checkpoint_id)

    assert restored_task_id == task.id
    assert restored_store.get_task(task.id) == before
    assert restored_store.get_agent(agent.id).role == Role.PLANNER
    summaries = reloaded.list_for_task(task.id)
    assert [summary.id for summary in summaries] == [checkpoint_id]
    assert reloaded.delete(checkpoint_id) is True
    assert reloaded.get(checkpoint_id) is None
