"""Runtime guards: audit trail, tool-call budgets and cancellation."""

from .audit import AuditEntry, JsonlAuditLogger
from .budget import ToolBudgetExceededError, ToolCallBudget
from .cancellation import CancellationToken, RunCancelledError

__all__ = [
    "AuditEntry",
    "CancellationToken",
    "JsonlAuditLogger",
    "RunCancelledError",
    "ToolBudgetExceededError",
    "ToolCallBudget",
]
