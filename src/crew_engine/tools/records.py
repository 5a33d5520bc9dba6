from __future__ import annotations

import threading
from typing import Any


class InMemoryRecordStore:
    """Workspace-scoped structured records backing the ``database_query`` tool."""

    def __init__(self) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def add(self, collection: str, record: dict[str, Any]) -> None:
        if "workspace_id" not in record:
            raise ValueError("records must carry a workspace_id")
        with self._lock:
            self._collections.setdefault(collection, []).append(dict(record))

    def query(
        self,
        collection: str,
        *,
        workspace_id: str,
        where: dict[str, Any] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        # The workspace filter always wins over a caller-supplied workspace_id.
        secure_where = {**(where or {}), "workspace_id": workspace_id}
        with self._lock:
            rows = list(self._collections.get(collection, []))
        matches = [
            dict(row)
            for row in rows
            if all(row.get(key) == value for key, value in secure_where.items())
        ]
        return matches[:limit]
