from __future__ import annotations

from typing import Any, Protocol

from crew_engine.models import Crew, RunPatch, RunRecord, RunScope, RunStatus


class RunNotFoundError(RuntimeError):
    pass


class RunStore(Protocol):
    def create(
        self, run_id: str, crew: Crew, scope: RunScope, inputs: dict[str, Any]
    ) -> RunRecord: ...

    def update(self, run_id: str, patch: RunPatch) -> RunRecord: ...

    def get(self, run_id: str) -> RunRecord | None: ...

    def list_runs(self, workspace_id: str, status: RunStatus | None = None) -> list[RunRecord]: ...
