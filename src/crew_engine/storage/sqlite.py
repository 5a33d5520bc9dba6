from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from crew_engine.models import (
    Crew,
    ExecutionStep,
    RunPatch,
    RunRecord,
    RunScope,
    RunStatus,
    TaskResult,
)

from .base import RunNotFoundError

_TASK_RESULTS = TypeAdapter(dict[str, TaskResult])
_STEPS = TypeAdapter(list[ExecutionStep])


class SqliteRunStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    workspace_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    crew_json TEXT NOT NULL,
                    inputs_json TEXT NOT NULL,
                    status TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    total_duration_ms INTEGER,
                    task_results_json TEXT NOT NULL,
                    final_output_json TEXT,
                    steps_json TEXT NOT NULL,
                    error TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_runs_workspace ON runs (workspace_id, status)"
            )
            conn.commit()

    def create(
        self, run_id: str, crew: Crew, scope: RunScope, inputs: dict[str, Any]
    ) -> RunRecord:
        record = RunRecord(run_id=run_id, crew=crew.snapshot(), scope=scope, inputs=inputs)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO runs (
                    run_id, workspace_id, user_id, crew_json, inputs_json, status,
                    start_time, task_results_json, steps_json, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.run_id,
                    scope.workspace_id,
                    scope.user_id,
                    json.dumps(record.crew, ensure_ascii=True),
                    json.dumps(inputs, ensure_ascii=True, default=str),
                    record.status.value,
                    record.start_time.isoformat(),
                    "{}",
                    "[]",
                    record.start_time.isoformat(),
                ),
            )
            conn.commit()
        return record

    def update(self, run_id: str, patch: RunPatch) -> RunRecord:
        with self._lock:
            record = self.get(run_id)
            if record is None:
                raise RunNotFoundError(f"run not found: {run_id}")
            updated = record.apply(patch)
            with self._connect() as conn:
                conn.execute(
                    """
                    UPDATE runs
                    SET status = ?, end_time = ?, total_duration_ms = ?,
                        task_results_json = ?, final_output_json = ?, steps_json = ?,
                        error = ?, updated_at = ?
                    WHERE run_id = ?
                    """,
                    (
                        updated.status.value,
                        updated.end_time.isoformat() if updated.end_time else None,
                        updated.total_duration_ms,
                        _TASK_RESULTS.dump_json(updated.task_results).decode("utf-8"),
                        updated.final_output.model_dump_json() if updated.final_output else None,
                        _STEPS.dump_json(updated.steps).decode("utf-8"),
                        updated.error,
                        datetime.now(timezone.utc).isoformat(),
                        run_id,
                    ),
                )
                conn.commit()
        return updated

    def get(self, run_id: str) -> RunRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT run_id, workspace_id, user_id, crew_json, inputs_json, status,
                       start_time, end_time, total_duration_ms, task_results_json,
                       final_output_json, steps_json, error
                FROM runs
                WHERE run_id = ?
                """,
                (run_id,),
            ).fetchone()
        if not row:
            return None
        return RunRecord(
            run_id=row["run_id"],
            crew=json.loads(row["crew_json"]),
            scope=RunScope(workspace_id=row["workspace_id"], user_id=row["user_id"]),
            inputs=json.loads(row["inputs_json"]),
            status=RunStatus(row["status"]),
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]) if row["end_time"] else None,
            total_duration_ms=row["total_duration_ms"],
            task_results=_TASK_RESULTS.validate_json(row["task_results_json"]),
            final_output=(
                TaskResult.model_validate_json(row["final_output_json"])
                if row["final_output_json"]
                else None
            ),
            steps=_STEPS.validate_json(row["steps_json"]),
            error=row["error"],
        )

    def list_runs(self, workspace_id: str, status: RunStatus | None = None) -> list[RunRecord]:
        query = "SELECT run_id FROM runs WHERE workspace_id = ?"
        params: tuple[Any, ...] = (workspace_id,)
        if status is not None:
            query += " AND status = ?"
            params = (workspace_id, status.value)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY start_time ASC", params).fetchall()
        records = [self.get(row["run_id"]) for row in rows]
        return [record for record in records if record is not None]
