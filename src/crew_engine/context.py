from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from crew_engine.models import RunScope, TaskResult
from crew_engine.runtime.cancellation import CancellationToken
from crew_engine.steps import StepLog


class AgentMemory(Protocol):
    """Extension point for per-agent multi-turn memory. Nothing reads it yet."""

    def append(self, agent_id: str, entry: Any) -> None: ...

    def entries(self, agent_id: str) -> list[Any]: ...


class ListAgentMemory:
    def __init__(self) -> None:
        self._entries: dict[str, list[Any]] = {}

    def append(self, agent_id: str, entry: Any) -> None:
        self._entries.setdefault(agent_id, []).append(entry)

    def entries(self, agent_id: str) -> list[Any]:
        return list(self._entries.get(agent_id, []))


@dataclass
class ExecutionContext:
    run_id: str
    scope: RunScope
    inputs: dict[str, Any]
    steps: StepLog = field(default_factory=StepLog)
    memory: AgentMemory = field(default_factory=ListAgentMemory)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    diagnostics: list[dict[str, Any]] = field(default_factory=list)
    _task_results: dict[str, TaskResult] = field(default_factory=dict, repr=False)
    _results_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _result_listeners: list[Callable[[TaskResult], None]] = field(default_factory=list, repr=False)

    def on_result(self, listener: Callable[[TaskResult], None]) -> None:
        self._result_listeners.append(listener)

    def record_result(self, result: TaskResult) -> None:
        with self._results_lock:
            if result.task_id in self._task_results:
                raise ValueError(f"task {result.task_id} already has a result in this run")
            self._task_results[result.task_id] = result
        for listener in self._result_listeners:
            listener(result)

    def get_result(self, task_id: str) -> TaskResult | None:
        with self._results_lock:
            return self._task_results.get(task_id)

    @property
    def task_results(self) -> dict[str, TaskResult]:
        with self._results_lock:
            return dict(self._task_results)

    def dependency_results(self, depends_on: list[str]) -> list[TaskResult]:
        results: list[TaskResult] = []
        for task_id in depends_on:
            result = self.get_result(task_id)
            if result is not None:
                results.append(result)
        return results
