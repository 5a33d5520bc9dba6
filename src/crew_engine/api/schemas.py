from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from crew_engine.models import Crew, RunRecord, RunScope


class RunCreateRequest(BaseModel):
    crew: Crew
    workspace_id: str
    user_id: str
    inputs: dict[str, Any] = Field(default_factory=dict)

    @property
    def scope(self) -> RunScope:
        return RunScope(workspace_id=self.workspace_id, user_id=self.user_id)


class RunCancelResponse(BaseModel):
    run_id: str
    cancelled: bool


class RunSummaryResponse(BaseModel):
    run_id: str
    crew_id: str | None = None
    crew_name: str | None = None
    status: str
    start_time: datetime
    end_time: datetime | None = None
    total_duration_ms: int | None = None
    step_count: int = 0
    error: str | None = None

    @classmethod
    def from_record(cls, record: RunRecord) -> "RunSummaryResponse":
        return cls(
            run_id=record.run_id,
            crew_id=record.crew.get("crew_id"),
            crew_name=record.crew.get("crew_name"),
            status=record.status.value,
            start_time=record.start_time,
            end_time=record.end_time,
            total_duration_ms=record.total_duration_ms,
            step_count=len(record.steps),
            error=record.error,
        )
