from __future__ import annotations

import threading
from typing import Any

from crew_engine.models import Crew, RunPatch, RunRecord, RunScope, RunStatus

from .base import RunNotFoundError


class InMemoryRunStore:
    def __init__(self) -> None:
        self._records: dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    def create(
        self, run_id: str, crew: Crew, scope: RunScope, inputs: dict[str, Any]
    ) -> RunRecord:
        record = RunRecord(run_id=run_id, crew=crew.snapshot(), scope=scope, inputs=inputs)
        with self._lock:
            if run_id in self._records:
                raise ValueError(f"run already exists: {run_id}")
            self._records[run_id] = record
        return record

    def update(self, run_id: str, patch: RunPatch) -> RunRecord:
        with self._lock:
            record = self._records.get(run_id)
            if record is None:
                raise RunNotFoundError(f"run not found: {run_id}")
            updated = record.apply(patch)
            self._records[run_id] = updated
        return updated

    def get(self, run_id: str) -> RunRecord | None:
        with self._lock:
            return self._records.get(run_id)

    def list_runs(self, workspace_id: str, status: RunStatus | None = None) -> list[RunRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted(
            (
                record
                for record in records
                if record.scope.workspace_id == workspace_id
                and (status is None or record.status == status)
            ),
            key=lambda record: record.start_time,
        )
