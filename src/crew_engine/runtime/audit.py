from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class AuditEntry:
    at: str
    run_id: str
    category: str
    action: str
    metadata: dict[str, Any]


class JsonlAuditLogger:
    def __init__(self, path: str) -> None:
        self.path = Path(path).expanduser().resolve()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, *, run_id: str, category: str, action: str, metadata: dict[str, Any]) -> None:
        entry = AuditEntry(
            at=datetime.now(timezone.utc).isoformat(),
            run_id=run_id,
            category=category,
            action=action,
            metadata=metadata,
        )
        line = json.dumps(asdict(entry), ensure_ascii=True, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as file:
            file.write(line + "\n")

    def read_entries(
        self, run_id: str | None = None, *, category: str | None = None
    ) -> list[AuditEntry]:
        """Entries in write order, optionally narrowed to one run and one category."""
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        entries = [AuditEntry(**json.loads(line)) for line in lines if line.strip()]
        return [
            entry
            for entry in entries
            if (run_id is None or entry.run_id == run_id)
            and (category is None or entry.category == category)
        ]
