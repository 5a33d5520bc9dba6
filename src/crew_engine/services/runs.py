from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

from crew_engine.context import ExecutionContext
from crew_engine.logger import get_logger
from crew_engine.models import (
    Crew,
    ExecutionResult,
    ExecutionStep,
    RunPatch,
    RunRecord,
    RunScope,
    RunStatus,
    TaskResult,
)
from crew_engine.orchestration.executor import TaskExecutor
from crew_engine.orchestration.scheduling import get_scheduler
from crew_engine.runtime.audit import JsonlAuditLogger
from crew_engine.runtime.cancellation import CancellationToken, RunCancelledError
from crew_engine.storage.base import RunNotFoundError, RunStore

logger = get_logger(__name__)

StepListener = Callable[[ExecutionStep], None]


def new_run_id() -> str:
    return f"exec_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class RunController:
    """Top-level entry point for crew runs.

    Creates the run record before any task executes, drives the crew's scheduler
    and always finishes with a terminal record update. Task failures become
    ``failed`` results; configuration errors and a failed record creation raise.
    """

    def __init__(
        self,
        *,
        store: RunStore,
        executor: TaskExecutor,
        audit_logger: JsonlAuditLogger | None = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.audit_logger = audit_logger
        self._active: dict[str, CancellationToken] = {}

    async def run(
        self,
        crew: Crew,
        scope: RunScope,
        inputs: dict[str, Any] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        return await self._execute(crew, scope, inputs, cancel_token or CancellationToken())

    async def run_streaming(
        self,
        crew: Crew,
        scope: RunScope,
        inputs: dict[str, Any] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[ExecutionStep | ExecutionResult]:
        """Yield steps as they are emitted, then the terminal ExecutionResult."""
        token = cancel_token or CancellationToken()
        queue: asyncio.Queue[ExecutionStep | None] = asyncio.Queue()
        runner = asyncio.create_task(
            self._execute(crew, scope, inputs, token, listener=queue.put_nowait)
        )
        runner.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                step = await queue.get()
                if step is None:
                    break
                yield step
            yield runner.result()
        finally:
            if not runner.done():
                token.cancel("Streaming consumer disconnected")
                await asyncio.gather(runner, return_exceptions=True)

    @property
    def active_run_ids(self) -> list[str]:
        return list(self._active)

    def validate(self, crew: Crew) -> None:
        get_scheduler(crew.process, self.executor).validate(crew)

    def cancel(self, run_id: str, reason: str = "Run cancelled by request") -> bool:
        token = self._active.get(run_id)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def get_run(self, run_id: str) -> RunRecord:
        record = self.store.get(run_id)
        if record is None:
            raise RunNotFoundError(f"run not found: {run_id}")
        return record

    async def _execute(
        self,
        crew: Crew,
        scope: RunScope,
        inputs: dict[str, Any] | None,
        token: CancellationToken,
        listener: StepListener | None = None,
    ) -> ExecutionResult:
        scheduler = get_scheduler(crew.process, self.executor)
        scheduler.validate(crew)

        run_id = new_run_id()
        run_inputs = {**crew.inputs, **(inputs or {})}
        self.store.create(run_id, crew, scope, run_inputs)
        self._audit(run_id, "created", {"crew_id": crew.id, "process": crew.process.value})
        logger.info("run_started", run_id=run_id, crew_id=crew.id, process=crew.process.value)

        context = ExecutionContext(
            run_id=run_id,
            scope=scope,
            inputs=run_inputs,
            cancel_token=token,
        )
        if listener is not None:
            context.steps.subscribe(listener)
        context.on_result(self._progress_listener(context))

        self._active[run_id] = token
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        final_output: TaskResult | None = None
        error: str | None = None
        interrupted: asyncio.CancelledError | None = None
        try:
            final_output = await scheduler.run(crew, context)
            status = RunStatus.COMPLETED
        except RunCancelledError as exc:
            status = RunStatus.CANCELLED
            error = str(exc)
        except asyncio.CancelledError as exc:
            token.cancel("Run task cancelled")
            status = RunStatus.CANCELLED
            error = "Run task cancelled"
            interrupted = exc
        except Exception as exc:
            status = RunStatus.FAILED
            error = str(exc) or exc.__class__.__name__
        finally:
            self._active.pop(run_id, None)

        end_time = datetime.now(timezone.utc)
        result = ExecutionResult(
            run_id=run_id,
            status=status,
            start_time=start_time,
            end_time=end_time,
            total_duration_ms=int((time.monotonic() - started) * 1000),
            task_results=context.task_results,
            final_output=final_output,
            steps=context.steps.snapshot(),
            error=error,
        )
        self._persist(
            run_id,
            RunPatch(
                status=result.status,
                end_time=result.end_time,
                total_duration_ms=result.total_duration_ms,
                task_results=result.task_results,
                final_output=result.final_output,
                steps=result.steps,
                error=result.error,
            ),
        )
        for diagnostic in context.diagnostics:
            self._audit(run_id, "diagnostic", diagnostic)
        self._audit(
            run_id,
            result.status.value,
            {"error": result.error or "", "task_count": len(result.task_results)},
        )
        logger.info(
            "run_finished",
            run_id=run_id,
            status=result.status.value,
            duration_ms=result.total_duration_ms,
            error=result.error,
        )
        if interrupted is not None:
            raise interrupted
        return result

    def _progress_listener(self, context: ExecutionContext) -> Callable[[TaskResult], None]:
        def _on_result(_: TaskResult) -> None:
            self._persist(
                context.run_id,
                RunPatch(
                    status=RunStatus.RUNNING,
                    task_results=context.task_results,
                    steps=context.steps.snapshot(),
                ),
            )

        return _on_result

    def _persist(self, run_id: str, patch: RunPatch) -> None:
        try:
            self.store.update(run_id, patch)
        except Exception as exc:
            logger.error(
                "run_store_update_failed",
                run_id=run_id,
                status=patch.status.value,
                error=str(exc),
            )
            self._audit(run_id, "persistence_failed", {"error": str(exc)})

    def _audit(self, run_id: str, action: str, metadata: dict[str, Any]) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log(run_id=run_id, category="run", action=action, metadata=metadata)
