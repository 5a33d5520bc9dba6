from __future__ import annotations

import json
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse

from crew_engine.api.schemas import RunCancelResponse, RunCreateRequest, RunSummaryResponse
from crew_engine.config import EngineSettings
from crew_engine.hooks.observability import EventLogger
from crew_engine.llm.client import ModelInferenceService, OpenRouterClient
from crew_engine.logger import configure_logging
from crew_engine.models import ExecutionResult, RunRecord, RunStatus
from crew_engine.orchestration.detection import JsonToolCallDetector, KeywordToolUseDetector
from crew_engine.orchestration.executor import TaskExecutor
from crew_engine.orchestration.scheduling import CrewConfigurationError
from crew_engine.runtime.audit import JsonlAuditLogger
from crew_engine.services.runs import RunController
from crew_engine.storage.base import RunNotFoundError
from crew_engine.storage.sqlite import SqliteRunStore
from crew_engine.tools.dispatcher import ToolDispatcher
from crew_engine.tools.registry import BuiltinToolRegistry, ToolRegistry


def _sse(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=True)}\n\n"


def create_app(
    db_path: str | None = None,
    *,
    settings: EngineSettings | None = None,
    model_service: ModelInferenceService | None = None,
    tool_registry: ToolRegistry | None = None,
) -> FastAPI:
    settings = settings or EngineSettings.from_env()
    configure_logging(settings.log_level)

    hook_logger = EventLogger()
    store = SqliteRunStore(db_path or settings.db_path)
    audit_logger = JsonlAuditLogger(settings.audit_log_path)
    model_service = model_service or OpenRouterClient(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        site_url=settings.site_url,
        app_title=settings.app_title,
        request_timeout_seconds=settings.llm_request_timeout_seconds,
        logger=hook_logger,
    )
    tool_registry = tool_registry or BuiltinToolRegistry(
        files_root=settings.files_root,
        serper_api_key=settings.serper_api_key,
    )
    detector = (
        JsonToolCallDetector() if settings.tool_detection == "json" else KeywordToolUseDetector()
    )
    executor = TaskExecutor(
        model_service,
        ToolDispatcher(
            tool_registry,
            logger=hook_logger,
            timeout_seconds=settings.tool_timeout_seconds,
        ),
        detector=detector,
        task_timeout_seconds=settings.task_timeout_seconds,
    )
    controller = RunController(store=store, executor=executor, audit_logger=audit_logger)

    app = FastAPI(title="Crew Engine API", version="0.1.0")
    app.state.run_controller = controller
    app.state.hook_logger = hook_logger

    @app.post("/runs", response_model=ExecutionResult)
    async def create_run(payload: RunCreateRequest) -> ExecutionResult:
        try:
            return await controller.run(payload.crew, payload.scope, payload.inputs)
        except CrewConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/runs/stream")
    async def stream_run(payload: RunCreateRequest) -> StreamingResponse:
        try:
            controller.validate(payload.crew)
        except CrewConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        async def event_generator() -> AsyncIterator[str]:
            yield _sse("connected", {"crew_id": payload.crew.id})
            async for item in controller.run_streaming(payload.crew, payload.scope, payload.inputs):
                if isinstance(item, ExecutionResult):
                    yield _sse("result", item.model_dump(mode="json"))
                else:
                    yield _sse("step", item.model_dump(mode="json"))

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    @app.get("/runs", response_model=list[RunSummaryResponse])
    async def list_runs(
        workspace_id: str = Query(...),
        status: RunStatus | None = Query(default=None),
    ) -> list[RunSummaryResponse]:
        return [
            RunSummaryResponse.from_record(record)
            for record in store.list_runs(workspace_id, status=status)
        ]

    @app.get("/runs/{run_id}", response_model=RunRecord)
    async def get_run(run_id: str) -> RunRecord:
        try:
            return controller.get_run(run_id)
        except RunNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post("/runs/{run_id}/cancel", response_model=RunCancelResponse, status_code=202)
    async def cancel_run(run_id: str) -> RunCancelResponse:
        if not controller.cancel(run_id):
            raise HTTPException(status_code=404, detail=f"no active run: {run_id}")
        return RunCancelResponse(run_id=run_id, cancelled=True)

    return app


app = create_app()
