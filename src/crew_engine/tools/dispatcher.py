from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from crew_engine.context import ExecutionContext
from crew_engine.hooks.observability import EventLogger
from crew_engine.runtime.cancellation import RunCancelledError
from crew_engine.tools.registry import ToolRegistry, mock_tool_result


@dataclass
class ToolResult:
    tool_name: str
    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def mock(self) -> bool:
        return bool(self.payload.get("mock"))

    def as_metadata(self) -> dict[str, Any]:
        if self.success:
            return {"result": self.payload, "success": True}
        return {"result": self.payload, "error": self.error, "success": False}


class ToolDispatcher:
    """Resolves a tool name against the registry and normalizes the outcome.

    Tool failures are returned as failed results, never raised: tools augment a
    task, they do not gate it. Only run cancellation escapes.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        *,
        logger: EventLogger | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.registry = registry
        self.logger = logger or EventLogger()
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        tool_name: str,
        params: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        self.logger.on_tool_call(tool=tool_name, phase="start")
        if self.registry is None:
            payload = mock_tool_result(tool_name)
        else:
            try:
                payload = await context.cancel_token.guard(
                    self.registry.invoke(tool_name, params, context.scope),
                    timeout=self.timeout_seconds,
                )
            except RunCancelledError:
                raise
            except Exception as exc:
                payload = {"error": str(exc) or exc.__class__.__name__, "success": False}

        result = _normalize(tool_name, payload)
        self.logger.on_tool_call(tool=tool_name, phase="done", success=result.success)
        return result


def _normalize(tool_name: str, payload: Any) -> ToolResult:
    if not isinstance(payload, dict):
        return ToolResult(tool_name=tool_name, success=True, payload={"result": payload, "success": True})
    if payload.get("success") is False or ("error" in payload and "success" not in payload):
        return ToolResult(
            tool_name=tool_name,
            success=False,
            payload=payload,
            error=str(payload.get("error") or "tool failed"),
        )
    return ToolResult(tool_name=tool_name, success=True, payload=payload)
