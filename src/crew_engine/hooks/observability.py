from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class HookEvent:
    at: datetime
    kind: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    def __init__(self) -> None:
        self._events: list[HookEvent] = []
        self._lock = threading.Lock()

    def record(self, kind: str, name: str, payload: dict[str, Any] | None = None) -> None:
        event = HookEvent(
            at=datetime.now(timezone.utc),
            kind=kind,
            name=name,
            payload=payload or {},
        )
        with self._lock:
            self._events.append(event)

    def on_llm_call(self, model: str, phase: str, **payload: Any) -> None:
        self.record("llm_call", phase, {"model": model, **payload})

    def on_tool_call(self, tool: str, phase: str, success: bool | None = None) -> None:
        self.record("tool_call", tool, {"phase": phase, "success": success})

    def list_events(self, kind: str | None = None) -> list[HookEvent]:
        with self._lock:
            events = list(self._events)
        if kind is None:
            return events
        return [event for event in events if event.kind == kind]
