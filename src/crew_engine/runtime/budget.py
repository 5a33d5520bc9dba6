from __future__ import annotations


class ToolBudgetExceededError(RuntimeError):
    pass


class ToolCallBudget:
    """Caps tool dispatches for one task at the agent's ``max_iterations``."""

    def __init__(self, max_tool_calls: int) -> None:
        self.max_tool_calls = max_tool_calls
        self.tool_calls = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_tool_calls - self.tool_calls)

    def consume_tool_call(self) -> None:
        if self.tool_calls >= self.max_tool_calls:
            raise ToolBudgetExceededError(
                f"max_tool_calls exceeded: {self.tool_calls + 1}/{self.max_tool_calls}"
            )
        self.tool_calls += 1
