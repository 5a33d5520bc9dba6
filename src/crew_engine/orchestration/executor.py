from __future__ import annotations

import asyncio
import time
from typing import Any

from crew_engine.context import ExecutionContext
from crew_engine.interpolation import interpolate_variables
from crew_engine.llm.client import ModelInferenceService
from crew_engine.llm.models import CompletionRequest, CompletionResponse
from crew_engine.models import Agent, Crew, StepType, Task, TaskResult
from crew_engine.runtime.budget import ToolBudgetExceededError, ToolCallBudget
from crew_engine.runtime.cancellation import RunCancelledError
from crew_engine.tools.dispatcher import ToolDispatcher

from .detection import KeywordToolUseDetector, ToolInvocation, ToolUseDetector
from .prompts import build_agent_system_prompt, build_task_prompt

RESPONSE_PREVIEW_CHARS = 500


class TaskExecutionError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        task_id: str,
        agent_id: str,
        duration_ms: int = 0,
    ) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.agent_id = agent_id
        self.duration_ms = duration_ms


class TaskTimeoutError(TaskExecutionError):
    pass


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _preview(text: str) -> str:
    if len(text) <= RESPONSE_PREVIEW_CHARS:
        return text
    return text[:RESPONSE_PREVIEW_CHARS] + "..."


class TaskExecutor:
    """Runs a single task for a single agent. Holds no per-run state."""

    def __init__(
        self,
        model_service: ModelInferenceService,
        tool_dispatcher: ToolDispatcher | None = None,
        *,
        detector: ToolUseDetector | None = None,
        task_timeout_seconds: float | None = None,
    ) -> None:
        self.model_service = model_service
        self.tool_dispatcher = tool_dispatcher or ToolDispatcher()
        self.detector = detector or KeywordToolUseDetector()
        self.task_timeout_seconds = task_timeout_seconds

    async def execute_task(
        self,
        task: Task,
        agent: Agent,
        crew: Crew,
        context: ExecutionContext,
        *,
        start_metadata: dict[str, Any] | None = None,
    ) -> TaskResult:
        context.cancel_token.raise_if_cancelled()
        started = time.monotonic()
        step_fields = {"task_id": task.id, "agent_id": agent.id, "agent_name": agent.name}

        context.steps.emit(
            StepType.TASK_START,
            f"Starting task: {task.label}...",
            metadata=start_metadata,
            **step_fields,
        )

        description = interpolate_variables(task.description, context.inputs)
        expected_output = interpolate_variables(task.expected_output, context.inputs)
        request = CompletionRequest(
            model=agent.llm.model,
            system_prompt=build_agent_system_prompt(agent, crew),
            user_prompt=build_task_prompt(
                description,
                expected_output,
                context.dependency_results(task.depends_on),
            ),
            temperature=agent.llm.temperature,
            max_tokens=agent.llm.max_tokens,
            metadata={"run_id": context.run_id, "task_id": task.id},
        )

        context.steps.emit(
            StepType.AGENT_THINKING,
            f"{agent.name} is working on the task...",
            **step_fields,
        )

        try:
            response = await self._complete(request, task, agent, context)
            skipped = await self._run_tools(agent, response.content, context, step_fields)
        except Exception as exc:
            duration_ms = _elapsed_ms(started)
            context.steps.emit(
                StepType.ERROR,
                f"Error: {exc}",
                metadata={"error_type": exc.__class__.__name__},
                **step_fields,
            )
            if isinstance(exc, TaskExecutionError):
                exc.duration_ms = duration_ms
                raise
            if isinstance(exc, RunCancelledError):
                raise
            raise TaskExecutionError(
                f"Task {task.id} failed: {exc}",
                task_id=task.id,
                agent_id=agent.id,
                duration_ms=duration_ms,
            ) from exc

        response_metadata: dict[str, Any] = {"usage_tokens": response.usage_tokens}
        if skipped:
            response_metadata["skipped_tools"] = skipped
        context.steps.emit(
            StepType.AGENT_RESPONSE,
            _preview(response.content),
            metadata=response_metadata,
            **step_fields,
        )

        duration_ms = _elapsed_ms(started)
        context.steps.emit(
            StepType.TASK_COMPLETE,
            f"Task completed in {round(duration_ms / 1000)}s",
            duration_ms=duration_ms,
            **step_fields,
        )
        return TaskResult(
            task_id=task.id,
            agent_id=agent.id,
            output=response.content,
            duration_ms=duration_ms,
            usage_tokens=response.usage_tokens,
        )

    async def _complete(
        self,
        request: CompletionRequest,
        task: Task,
        agent: Agent,
        context: ExecutionContext,
    ) -> CompletionResponse:
        try:
            return await context.cancel_token.guard(
                self.model_service.complete(request),
                timeout=self.task_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(
                f"Task {task.id} timed out after "
                f"{self.task_timeout_seconds}s waiting for the model",
                task_id=task.id,
                agent_id=agent.id,
            ) from exc

    async def _run_tools(
        self,
        agent: Agent,
        response: str,
        context: ExecutionContext,
        step_fields: dict[str, Any],
    ) -> list[str]:
        invocations = self.detector.detect(agent, response)
        budget = ToolCallBudget(agent.max_iterations)
        skipped: list[str] = []
        for invocation in invocations:
            try:
                budget.consume_tool_call()
            except ToolBudgetExceededError:
                skipped.append(invocation.tool_name)
                continue
            await self._dispatch(invocation, context, step_fields)
        return skipped

    async def _dispatch(
        self,
        invocation: ToolInvocation,
        context: ExecutionContext,
        step_fields: dict[str, Any],
    ) -> None:
        context.cancel_token.raise_if_cancelled()
        context.steps.emit(
            StepType.TOOL_CALL,
            f"Using tool: {invocation.tool_name}",
            tool_name=invocation.tool_name,
            metadata={"params": invocation.params},
            **step_fields,
        )
        result = await self.tool_dispatcher.dispatch(
            invocation.tool_name, invocation.params, context
        )
        content = (
            f"Tool {invocation.tool_name} completed"
            if result.success
            else f"Tool {invocation.tool_name} failed: {result.error}"
        )
        context.steps.emit(
            StepType.TOOL_RESULT,
            content,
            tool_name=invocation.tool_name,
            metadata=result.as_metadata(),
            **step_fields,
        )
