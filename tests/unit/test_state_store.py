from __future__ import annotations

import pytest

from agent_pipeline.artifacts.builder import from_plan
from agent_pipeline.artifacts.models import Feedback, TaskPlan
from agent_pipeline.errors import CheckpointVersionError, NotFoundError
from agent_pipeline.state.memory import InMemoryCheckpointStore, InMemoryStateStore
from agent_pipeline.state.models import (
    AgentStatus,
    Checkpoint,
    ErrorEntry,
    Role,
    Severity,
    TaskStatus,
    TaskView,
)


def _store_with_task() -> tuple[InMemoryStateStore, TaskView]:
    store = InMemoryStateStore()
    task = store.create_task("Build Feature", "desc", "/p", ["TypeScript"])
    return store, task


def test_new_task_is_pending_without_agents() -> None:
    store, task = _store_with_task()

    assert task.status == TaskStatus.PENDING
    assert task.progress == 0
    assert task.agents == []
    assert task.context.tech_stack == ["TypeScript"]
    assert store.get_execution_log(task.id) == []


def test_create_agent_starts_idle_and_appears_in_view() -> None:
    store, task = _store_with_task()

    agent = store.create_agent(task.id, "planner", "m")

    assert agent.status == AgentStatus.IDLE
    assert agent.role == Role.PLANNER
    view = store.get_task(task.id)
    assert [item.id for item in view.agents] == [agent.id]
    assert view.agent_ids == [agent.id]


def test_unknown_ids_raise_not_found() -> None:
    store, _ = _store_with_task()

    with pytest.raises(NotFoundError, match="Task not found: missing"):
        store.get_task("missing")
    with pytest.raises(NotFoundError):
        store.get_agent("missing")
    with pytest.raises(NotFoundError):
        store.create_agent("missing", Role.CODER, "m")
    with pytest.raises(NotFoundError):
        store.update_task("missing", progress=10)


def test_update_agent_is_visible_through_task_view() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.CODER, "m")

    updated = store.update_agent(agent.id, status=AgentStatus.EXECUTING, progress=55)

    assert store.get_agent(agent.id) == updated
    assert store.get_task(task.id).agents[0] == updated


def test_reads_return_copies() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")

    view = store.get_task(task.id)
    view.title = "mutated"
    view.agents[0].reasoning.append("mutated")
    record = store.get_agent(agent.id)
    record.progress = 99

    fresh = store.get_task(task.id)
    assert fresh.title == "Build Feature"
    assert fresh.agents[0].reasoning == []
    assert store.get_agent(agent.id).progress == 0


def test_update_task_merges_and_refreshes_updated_at() -> None:
    store, task = _store_with_task()

    updated = store.update_task(task.id, status=TaskStatus.PLANNING, progress=20)

    assert updated.status == TaskStatus.PLANNING
    assert updated.progress == 20
    assert updated.title == task.title
    assert updated.updated_at >= task.updated_at


def test_update_rejects_identity_and_unknown_fields() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")

    with pytest.raises(ValueError, match="cannot be updated: id"):
        store.update_task(task.id, id="other")
    with pytest.raises(ValueError, match="Unknown fields: colour"):
        store.update_task(task.id, colour="red")
    with pytest.raises(ValueError, match="cannot be updated: role"):
        store.update_agent(agent.id, role=Role.CODER)


def test_artifacts_and_errors_are_mirrored_on_the_agent() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")
    artifact = from_plan(task.id, agent.id, TaskPlan(title="Plan"))
    error = ErrorEntry(agent_id=agent.id, role=Role.PLANNER, message="boom")

    store.add_artifact(task.id, artifact)
    store.add_error(task.id, error)

    view = store.get_task(task.id)
    assert [item.id for item in view.artifacts] == [artifact.id]
    assert view.agents[0].artifact_ids == [artifact.id]
    assert view.agents[0].error_ids == [error.id]


def test_add_artifact_rejects_foreign_task() -> None:
    store, task = _store_with_task()
    artifact = from_plan("other-task", "agent", TaskPlan(title="Plan"))

    with pytest.raises(ValueError):
        store.add_artifact(task.id, artifact)


def test_add_feedback_bumps_version_and_records_feedback() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")
    artifact = from_plan(task.id, agent.id, TaskPlan(title="Plan"))
    store.add_artifact(task.id, artifact)
    feedback = Feedback(artifact_id=artifact.id, author="ana", comment="add tests")

    revised = store.add_feedback(task.id, artifact.id, feedback)

    assert revised.metadata.version == 2
    assert [item.comment for item in revised.feedback] == ["add tests"]
    view = store.get_task(task.id)
    assert view.artifacts[0].metadata.version == 2
    assert [item.id for item in view.feedback] == [feedback.id]

    with pytest.raises(NotFoundError):
        store.add_feedback(task.id, "missing", feedback)


def test_checkpoint_round_trip_restores_deep_equal_task() -> None:
    store, task = _store_with_task()
    planner = store.create_agent(task.id, Role.PLANNER, "m")
    store.update_agent(planner.id, reasoning=["step one"], progress=40)
    store.add_artifact(task.id, from_plan(task.id, planner.id, TaskPlan(title="Plan")))
    before = store.get_task(task.id)

    checkpoint_id = store.create_checkpoint(task.id)
    store.update_task(task.id, title="changed", status=TaskStatus.FAILED)
    store.update_agent(planner.id, reasoning=["step one", "step two"])
    late = store.create_agent(task.id, Role.CODER, "m")

    assert store.restore_checkpoint(checkpoint_id) == task.id
    assert store.get_task(task.id) == before
    with pytest.raises(NotFoundError):
        store.get_agent(late.id)


def test_checkpoint_survives_json_serialization() -> None:
    checkpoints = InMemoryCheckpointStore()
    store = InMemoryStateStore(checkpoints)
    task = store.create_task("Build Feature", "desc", "/p", ["Python"])
    agent = store.create_agent(task.id, Role.PLANNER, "m")
    store.add_artifact(task.id, from_plan(task.id, agent.id, TaskPlan(title="Plan")))

    checkpoint = checkpoints.get(store.create_checkpoint(task.id))

    assert checkpoint is not None
    assert checkpoint.schema_version == 1
    assert Checkpoint.model_validate_json(checkpoint.model_dump_json()) == checkpoint


def test_restore_rejects_incompatible_schema_version() -> None:
    checkpoints = InMemoryCheckpointStore()
    store = InMemoryStateStore(checkpoints)
    task = store.create_task("Build Feature", "desc", "/p", [])
    checkpoint = checkpoints.get(store.create_checkpoint(task.id, "checkpoint-old"))
    checkpoints.save(checkpoint.model_copy(update={"id": "checkpoint-future", "schema_version": 2}))

    with pytest.raises(CheckpointVersionError):
        store.restore_checkpoint("checkpoint-future")
    with pytest.raises(NotFoundError):
        store.restore_checkpoint("checkpoint-missing")


def test_list_and_delete_checkpoints() -> None:
    store, task = _store_with_task()
    first = store.create_checkpoint(task.id)
    second = store.create_checkpoint(task.id)

    assert [item.id for item in store.list_checkpoints(task.id)] == [first, second]

    store.delete_checkpoint(first)
    assert [item.id for item in store.list_checkpoints(task.id)] == [second]
    with pytest.raises(NotFoundError):
        store.delete_checkpoint(first)


def test_raising_listener_does_not_abort_update() -> None:
    store, task = _store_with_task()
    seen: list[TaskView] = []

    def broken(_: TaskView) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(task.id, broken)
    store.subscribe(task.id, seen.append)

    updated = store.update_task(task.id, progress=30)

    assert updated.progress == 30
    assert store.get_task(task.id).progress == 30
    assert seen[-1].progress == 30


def test_unsubscribe_stops_notifications() -> None:
    store, task = _store_with_task()
    seen: list[TaskView] = []
    unsubscribe = store.subscribe(task.id, seen.append)

    store.update_task(task.id, progress=10)
    unsubscribe()
    store.update_task(task.id, progress=20)

    assert [view.progress for view in seen] == [10]


def test_agent_updates_notify_the_owning_task() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.TESTER, "m")
    seen: list[TaskView] = []
    store.subscribe(task.id, seen.append)

    store.update_agent(agent.id, progress=70)

    assert seen[-1].agents[0].progress == 70


def test_export_import_round_trip() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")
    store.add_artifact(task.id, from_plan(task.id, agent.id, TaskPlan(title="Plan")))
    exported = store.export_task(task.id)

    other = InMemoryStateStore()
    imported = other.import_task(exported)

    assert imported == store.get_task(task.id)
    assert other.get_agent(agent.id).role == Role.PLANNER


def test_import_over_existing_task_replaces_its_agents() -> None:
    store, task = _store_with_task()
    kept = store.create_agent(task.id, Role.PLANNER, "m")
    exported = store.export_task(task.id)
    later = store.create_agent(task.id, Role.ARCHITECT, "m")

    imported = store.import_task(exported)

    assert [agent.id for agent in imported.agents] == [kept.id]
    assert store.get_statistics()["total_agents"] == 1
    with pytest.raises(NotFoundError):
        store.get_agent(later.id)


def test_delete_task_drops_agents() -> None:
    store, task = _store_with_task()
    agent = store.create_agent(task.id, Role.PLANNER, "m")

    store.delete_task(task.id)

    with pytest.raises(NotFoundError):
        store.get_task(task.id)
    with pytest.raises(NotFoundError):
        store.get_agent(agent.id)


def test_statistics_count_tasks_agents_and_artifacts() -> None:
    store, task = _store_with_task()
    done = store.create_task("Other", "desc", "/p", [])
    agent = store.create_agent(task.id, Role.PLANNER, "m")
    store.add_artifact(task.id, from_plan(task.id, agent.id, TaskPlan(title="Plan")))
    store.update_task(done.id, status=TaskStatus.COMPLETE)
    store.add_error(task.id, ErrorEntry(message="note", severity=Severity.INFO))

    assert store.get_statistics() == {
        "total_tasks": 2,
        "active_tasks": 1,
        "completed_tasks": 1,
        "failed_tasks": 0,
        "total_agents": 1,
        "total_artifacts": 1,
    }
