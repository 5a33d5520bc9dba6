from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from crew_engine.context import ExecutionContext
from crew_engine.leveling import compute_task_levels
from crew_engine.models import Agent, Crew, ProcessType, StepType, Task, TaskResult
from crew_engine.runtime.cancellation import RunCancelledError

from .executor import TaskExecutionError, TaskExecutor


class CrewConfigurationError(ValueError):
    pass


class Scheduler(ABC):
    """Decides task order for one process policy and owns each task's
    not-started -> running -> done transition."""

    process: ProcessType

    def __init__(self, executor: TaskExecutor) -> None:
        self.executor = executor

    def validate(self, crew: Crew) -> None:
        for task in crew.tasks:
            self._resolve_agent(task, crew)

    @abstractmethod
    async def run(self, crew: Crew, context: ExecutionContext) -> TaskResult | None:
        """Execute the crew and return the result that becomes ``final_output``."""

    def _resolve_agent(self, task: Task, crew: Crew) -> Agent:
        agent = crew.find_agent(task.assigned_agent_id)
        if agent is None:
            raise CrewConfigurationError(
                f"Agent {task.assigned_agent_id} not found for task {task.id}"
            )
        return agent

    async def _execute(
        self,
        task: Task,
        agent: Agent,
        crew: Crew,
        context: ExecutionContext,
        start_metadata: dict[str, Any] | None = None,
    ) -> TaskResult:
        try:
            result = await self.executor.execute_task(
                task, agent, crew, context, start_metadata=start_metadata
            )
        except TaskExecutionError as exc:
            context.record_result(
                TaskResult(
                    task_id=task.id,
                    agent_id=agent.id,
                    output="",
                    duration_ms=exc.duration_ms,
                    success=False,
                    error=str(exc),
                )
            )
            raise
        context.record_result(result)
        return result


class SequentialScheduler(Scheduler):
    process = ProcessType.SEQUENTIAL

    async def run(self, crew: Crew, context: ExecutionContext) -> TaskResult | None:
        last_result: TaskResult | None = None
        for task in crew.tasks:
            context.cancel_token.raise_if_cancelled()
            agent = self._resolve_agent(task, crew)
            last_result = await self._execute(task, agent, crew, context)
        return last_result


class ParallelScheduler(Scheduler):
    """Runs each dependency level concurrently with a barrier between levels."""

    process = ProcessType.PARALLEL

    async def run(self, crew: Crew, context: ExecutionContext) -> TaskResult | None:
        last_result: TaskResult | None = None
        for level in compute_task_levels(crew.tasks):
            context.cancel_token.raise_if_cancelled()
            start_metadata: dict[str, Any] = {"level": level.index}
            if level.forced:
                start_metadata["forced_level"] = True
                context.diagnostics.append(
                    {
                        "kind": "forced_level",
                        "level": level.index,
                        "task_ids": level.task_ids,
                        "unresolved": level.unresolved,
                    }
                )

            outcomes = await asyncio.gather(
                *[
                    self._execute(
                        task,
                        self._resolve_agent(task, crew),
                        crew,
                        context,
                        start_metadata=dict(start_metadata),
                    )
                    for task in level.tasks
                ],
                return_exceptions=True,
            )
            failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
            if failures:
                cancelled = [exc for exc in failures if isinstance(exc, RunCancelledError)]
                raise cancelled[0] if cancelled else failures[0]
            # The final output is the first-declared task of the last level.
            last_result = outcomes[0]
        return last_result


class HierarchicalScheduler(Scheduler):
    """Sequential execution coordinated by the crew's first agent.

    Tasks whose assigned agent is missing fall back to the manager instead of
    failing configuration checks.
    """

    process = ProcessType.HIERARCHICAL

    def validate(self, crew: Crew) -> None:
        if not crew.agents:
            raise CrewConfigurationError("hierarchical crews need a manager agent")

    async def run(self, crew: Crew, context: ExecutionContext) -> TaskResult | None:
        manager = crew.agents[0]
        context.steps.emit(
            StepType.AGENT_THINKING,
            "Creating execution plan for the crew...",
            agent_id=manager.id,
            agent_name=manager.name,
        )

        last_result: TaskResult | None = None
        for task in crew.tasks:
            context.cancel_token.raise_if_cancelled()
            assignee = crew.find_agent(task.assigned_agent_id) or manager
            context.steps.emit(
                StepType.DELEGATION,
                f"Delegating task to {assignee.name}: {task.description[:100]}...",
                agent_id=manager.id,
                agent_name=manager.name,
                metadata={
                    "delegated_task_id": task.id,
                    "assignee_id": assignee.id,
                    "fallback_to_manager": assignee.id != task.assigned_agent_id,
                },
            )
            last_result = await self._execute(task, assignee, crew, context)
        return last_result


SCHEDULERS: dict[ProcessType, type[Scheduler]] = {
    ProcessType.SEQUENTIAL: SequentialScheduler,
    ProcessType.PARALLEL: ParallelScheduler,
    ProcessType.HIERARCHICAL: HierarchicalScheduler,
}


def get_scheduler(process: ProcessType, executor: TaskExecutor) -> Scheduler:
    return SCHEDULERS[process](executor)
