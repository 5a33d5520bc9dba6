from datetime import datetime, timezone

import pytest

from crew_engine.models import Agent, Crew, RunPatch, RunScope, RunStatus, StepType, Task, TaskResult
from crew_engine.steps import StepLog
from crew_engine.storage.base import RunNotFoundError
from crew_engine.storage.memory import InMemoryRunStore
from crew_engine.storage.sqlite import SqliteRunStore


def _crew() -> Crew:
    return Crew(
        id="crew-1",
        name="Writers",
        agents=[Agent(id="writer", name="Wes", role="Writer", goal="Write")],
        tasks=[Task(id="t1", description="Write a haiku", assigned_agent_id="writer")],
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRunStore()
    return SqliteRunStore(str(tmp_path / "runs.db"))


def test_create_writes_a_running_record(store) -> None:
    scope = RunScope(workspace_id="ws-1", user_id="user-1")

    store.create("exec_1", _crew(), scope, {"topic": "rain"})

    record = store.get("exec_1")
    assert record.status == RunStatus.RUNNING
    assert record.scope == scope
    assert record.inputs == {"topic": "rain"}
    assert record.crew["crew_name"] == "Writers"
    assert record.crew["tasks"] == [{"id": "t1", "name": None, "description": "Write a haiku"}]
    assert record.task_results == {}
    assert record.end_time is None
    assert store.get("exec_missing") is None


def test_update_applies_terminal_patch(store) -> None:
    store.create("exec_1", _crew(), RunScope(workspace_id="ws-1", user_id="u"), {})
    log = StepLog()
    log.emit(StepType.TASK_START, "Starting task: Write a haiku...", task_id="t1")
    result = TaskResult(task_id="t1", agent_id="writer", output="rain on tin", duration_ms=40)
    end_time = datetime(2026, 1, 1, tzinfo=timezone.utc)

    store.update(
        "exec_1",
        RunPatch(
            status=RunStatus.COMPLETED,
            end_time=end_time,
            total_duration_ms=40,
            task_results={"t1": result},
            final_output=result,
            steps=log.snapshot(),
        ),
    )

    record = store.get("exec_1")
    assert record.status == RunStatus.COMPLETED
    assert record.end_time == end_time
    assert record.total_duration_ms == 40
    assert record.task_results == {"t1": result}
    assert record.final_output == result
    assert [step.id for step in record.steps] == [step.id for step in log.snapshot()]
    assert record.steps[0].type == StepType.TASK_START
    assert record.error is None


def test_partial_patch_keeps_existing_fields(store) -> None:
    store.create("exec_1", _crew(), RunScope(workspace_id="ws-1", user_id="u"), {})
    result = TaskResult(task_id="t1", agent_id="writer", output="x", duration_ms=1)
    store.update("exec_1", RunPatch(status=RunStatus.RUNNING, task_results={"t1": result}))

    store.update("exec_1", RunPatch(status=RunStatus.FAILED, error="boom"))

    record = store.get("exec_1")
    assert record.status == RunStatus.FAILED
    assert record.error == "boom"
    assert record.task_results == {"t1": result}


def test_update_of_unknown_run_raises(store) -> None:
    with pytest.raises(RunNotFoundError):
        store.update("exec_missing", RunPatch(status=RunStatus.FAILED, error="x"))


def test_list_runs_filters_by_workspace_and_status(store) -> None:
    store.create("exec_1", _crew(), RunScope(workspace_id="ws-1", user_id="u"), {})
    store.create("exec_2", _crew(), RunScope(workspace_id="ws-1", user_id="u"), {})
    store.create("exec_3", _crew(), RunScope(workspace_id="ws-2", user_id="u"), {})
    store.update("exec_2", RunPatch(status=RunStatus.CANCELLED, error="stopped"))

    assert {r.run_id for r in store.list_runs("ws-1")} == {"exec_1", "exec_2"}
    assert [r.run_id for r in store.list_runs("ws-1", status=RunStatus.CANCELLED)] == ["exec_2"]
    assert [r.run_id for r in store.list_runs("ws-2")] == ["exec_3"]
