"""Task execution and the sequential, parallel and hierarchical schedulers."""

from .detection import JsonToolCallDetector, KeywordToolUseDetector, ToolInvocation, ToolUseDetector
from .executor import TaskExecutionError, TaskExecutor, TaskTimeoutError
from .scheduling import (
    CrewConfigurationError,
    HierarchicalScheduler,
    ParallelScheduler,
    Scheduler,
    SequentialScheduler,
    get_scheduler,
)

__all__ = [
    "CrewConfigurationError",
    "HierarchicalScheduler",
    "JsonToolCallDetector",
    "KeywordToolUseDetector",
    "ParallelScheduler",
    "Scheduler",
    "SequentialScheduler",
    "TaskExecutionError",
    "TaskExecutor",
    "TaskTimeoutError",
    "ToolInvocation",
    "ToolUseDetector",
]
