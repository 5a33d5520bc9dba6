"""Crew orchestration engine: runs agent task graphs against a shared model backend."""

from .interpolation import interpolate_variables
from .leveling import TaskLevel, compute_task_levels
from .models import (
    Agent,
    AgentModelConfig,
    Crew,
    ExecutionResult,
    ExecutionStep,
    ProcessType,
    RunScope,
    RunStatus,
    StepType,
    Task,
    TaskResult,
)
from .orchestration import CrewConfigurationError, TaskExecutionError, TaskExecutor
from .services import RunController

__all__ = [
    "Agent",
    "AgentModelConfig",
    "Crew",
    "CrewConfigurationError",
    "ExecutionResult",
    "ExecutionStep",
    "ProcessType",
    "RunController",
    "RunScope",
    "RunStatus",
    "StepType",
    "Task",
    "TaskExecutionError",
    "TaskExecutor",
    "TaskLevel",
    "TaskResult",
    "compute_task_levels",
    "interpolate_variables",
]
