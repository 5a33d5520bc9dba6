from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import Any

from crew_engine.models import ExecutionStep, StepType

StepListener = Callable[[ExecutionStep], None]


def new_step_id() -> str:
    return f"step_{uuid.uuid4().hex[:16]}"


class StepLog:
    """Append-only, emission-ordered trace of a run."""

    def __init__(self) -> None:
        self._steps: list[ExecutionStep] = []
        self._listeners: list[StepListener] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._steps)

    def subscribe(self, listener: StepListener) -> None:
        self._listeners.append(listener)

    def emit(
        self,
        step_type: StepType,
        content: str,
        *,
        task_id: str | None = None,
        agent_id: str | None = None,
        agent_name: str | None = None,
        tool_name: str | None = None,
        duration_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ExecutionStep:
        step = ExecutionStep(
            id=new_step_id(),
            type=step_type,
            content=content,
            task_id=task_id,
            agent_id=agent_id,
            agent_name=agent_name,
            tool_name=tool_name,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )
        with self._lock:
            self._steps.append(step)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(step)
        return step

    def snapshot(self) -> list[ExecutionStep]:
        with self._lock:
            return list(self._steps)

    def for_task(self, task_id: str) -> list[ExecutionStep]:
        return [step for step in self.snapshot() if step.task_id == task_id]
