import asyncio

import pytest

from crew_engine.context import ExecutionContext
from crew_engine.models import Agent, Crew, ProcessType, RunScope, StepType, Task
from crew_engine.orchestration.executor import TaskExecutionError, TaskExecutor
from crew_engine.orchestration.scheduling import (
    CrewConfigurationError,
    HierarchicalScheduler,
    ParallelScheduler,
    SequentialScheduler,
    get_scheduler,
)


AGENTS = [
    Agent(id="manager", name="Mona", role="Lead", goal="Coordinate"),
    Agent(id="writer", name="Wes", role="Writer", goal="Write"),
]


def _crew(tasks: list[Task], process: ProcessType = ProcessType.SEQUENTIAL) -> Crew:
    return Crew(id="crew-1", name="Crew", agents=AGENTS, tasks=tasks, process=process)


def _task(task_id: str, agent_id: str = "writer", depends_on: list[str] | None = None) -> Task:
    return Task(
        id=task_id,
        description=f"Do {task_id}",
        expected_output="text",
        assigned_agent_id=agent_id,
        depends_on=depends_on or [],
    )


def _context() -> ExecutionContext:
    return ExecutionContext(
        run_id="run-1",
        scope=RunScope(workspace_id="ws-1", user_id="user-1"),
        inputs={},
    )


def test_get_scheduler_maps_every_process() -> None:
    executor = TaskExecutor(model_service=None)
    assert isinstance(get_scheduler(ProcessType.SEQUENTIAL, executor), SequentialScheduler)
    assert isinstance(get_scheduler(ProcessType.PARALLEL, executor), ParallelScheduler)
    assert isinstance(get_scheduler(ProcessType.HIERARCHICAL, executor), HierarchicalScheduler)


def test_sequential_runs_in_order_and_only_passes_declared_dependencies(model_service) -> None:
    crew = _crew([_task("t1"), _task("t2"), _task("t3", depends_on=["t2"])])
    context = _context()

    final = asyncio.run(SequentialScheduler(TaskExecutor(model_service)).run(crew, context))

    assert [request.metadata["task_id"] for request in model_service.requests] == ["t1", "t2", "t3"]
    prompt = model_service.request_for("t3").user_prompt
    assert "output of t2" in prompt
    assert "output of t1" not in prompt
    assert final.task_id == "t3"
    assert set(context.task_results) == {"t1", "t2", "t3"}


def test_sequential_stops_at_first_failure(model_service) -> None:
    model_service.replies["t2"] = RuntimeError("boom")
    crew = _crew([_task("t1"), _task("t2"), _task("t3")])
    context = _context()

    with pytest.raises(TaskExecutionError, match="boom"):
        asyncio.run(SequentialScheduler(TaskExecutor(model_service)).run(crew, context))

    assert not model_service.started("t3")
    results = context.task_results
    assert results["t1"].success is True
    assert results["t2"].success is False
    assert "boom" in results["t2"].error
    assert "t3" not in results


def test_validate_rejects_unknown_agent() -> None:
    crew = _crew([_task("t1", agent_id="ghost")])

    with pytest.raises(CrewConfigurationError, match="Agent ghost not found for task t1"):
        SequentialScheduler(TaskExecutor(model_service=None)).validate(crew)


def test_parallel_levels_are_separated_by_a_barrier(model_service) -> None:
    model_service.delays["a"] = 0.05
    model_service.delays["b"] = 0.01
    crew = _crew(
        [_task("a"), _task("b"), _task("c", depends_on=["a", "b"])],
        process=ProcessType.PARALLEL,
    )
    context = _context()

    final = asyncio.run(ParallelScheduler(TaskExecutor(model_service)).run(crew, context))

    events = model_service.events
    assert events.index(("start", "b")) < events.index(("end", "a"))
    assert events.index(("start", "c")) > events.index(("end", "a"))
    assert events.index(("start", "c")) > events.index(("end", "b"))
    assert final.task_id == "c"
    prompt = model_service.request_for("c").user_prompt
    assert "### Previous Task 1 Output:\noutput of a" in prompt
    assert "### Previous Task 2 Output:\noutput of b" in prompt

    starts = [s for s in context.steps.snapshot() if s.type == StepType.TASK_START]
    assert {s.task_id: s.metadata["level"] for s in starts} == {"a": 0, "b": 0, "c": 1}


def test_parallel_final_output_is_first_declared_task_of_last_level(model_service) -> None:
    model_service.delays["x"] = 0.02
    crew = _crew([_task("x"), _task("y")], process=ProcessType.PARALLEL)
    context = _context()

    final = asyncio.run(ParallelScheduler(TaskExecutor(model_service)).run(crew, context))

    assert final.task_id == "x"
    assert final.output == "output of x"
    assert set(context.task_results) == {"x", "y"}


def test_parallel_failure_lets_siblings_settle_and_stops_later_levels(model_service) -> None:
    model_service.replies["a"] = RuntimeError("a broke")
    model_service.delays["b"] = 0.02
    crew = _crew(
        [_task("a"), _task("b"), _task("c", depends_on=["b"])],
        process=ProcessType.PARALLEL,
    )
    context = _context()

    with pytest.raises(TaskExecutionError, match="a broke"):
        asyncio.run(ParallelScheduler(TaskExecutor(model_service)).run(crew, context))

    assert ("end", "b") in model_service.events
    assert context.task_results["b"].success is True
    assert context.task_results["a"].success is False
    assert not model_service.started("c")


def test_parallel_cycle_runs_as_forced_level_with_diagnostic(model_service) -> None:
    crew = _crew(
        [_task("a", depends_on=["b"]), _task("b", depends_on=["a"])],
        process=ProcessType.PARALLEL,
    )
    context = _context()

    asyncio.run(ParallelScheduler(TaskExecutor(model_service)).run(crew, context))

    assert set(context.task_results) == {"a", "b"}
    starts = [s for s in context.steps.snapshot() if s.type == StepType.TASK_START]
    assert all(s.metadata["forced_level"] is True for s in starts)
    assert context.diagnostics == [
        {
            "kind": "forced_level",
            "level": 0,
            "task_ids": ["a", "b"],
            "unresolved": {"a": ["b"], "b": ["a"]},
        }
    ]


def test_hierarchical_delegates_through_manager_and_falls_back(model_service) -> None:
    crew = _crew(
        [_task("t1"), _task("t2", agent_id="ghost")],
        process=ProcessType.HIERARCHICAL,
    )
    context = _context()
    scheduler = HierarchicalScheduler(TaskExecutor(model_service))

    scheduler.validate(crew)
    final = asyncio.run(scheduler.run(crew, context))

    steps = context.steps.snapshot()
    assert steps[0].type == StepType.AGENT_THINKING
    assert steps[0].agent_id == "manager"
    assert steps[0].task_id is None

    delegations = [s for s in steps if s.type == StepType.DELEGATION]
    assert [d.content for d in delegations] == [
        "Delegating task to Wes: Do t1...",
        "Delegating task to Mona: Do t2...",
    ]
    assert all(d.agent_id == "manager" for d in delegations)
    assert delegations[1].metadata == {
        "delegated_task_id": "t2",
        "assignee_id": "manager",
        "fallback_to_manager": True,
    }
    assert context.task_results["t2"].agent_id == "manager"
    assert final.task_id == "t2"
    assert "You are Mona, a Lead." in model_service.request_for("t2").system_prompt
