from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_MAX_ITERATIONS = 25


class ProcessType(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    HIERARCHICAL = "hierarchical"


class StepType(str, Enum):
    TASK_START = "task_start"
    AGENT_THINKING = "agent_thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_RESPONSE = "agent_response"
    TASK_COMPLETE = "task_complete"
    DELEGATION = "delegation"
    ERROR = "error"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}


class AgentModelConfig(BaseModel):
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 4000

    @model_validator(mode="after")
    def validate_config(self) -> "AgentModelConfig":
        if not self.model.strip():
            raise ValueError("model must not be empty")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        return self


class Agent(BaseModel):
    id: str
    name: str
    role: str
    goal: str
    backstory: str = ""
    tools: list[str] = Field(default_factory=list)
    llm: AgentModelConfig = Field(default_factory=AgentModelConfig)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    allow_delegation: bool = False
    verbose: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_agent(self) -> "Agent":
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        return self


class Task(BaseModel):
    id: str
    name: str | None = None
    description: str
    expected_output: str = ""
    assigned_agent_id: str
    depends_on: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def label(self) -> str:
        return self.name or self.description[:50]


class Crew(BaseModel):
    id: str
    name: str
    description: str | None = None
    agents: list[Agent]
    tasks: list[Task]
    process: ProcessType = ProcessType.SEQUENTIAL
    inputs: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_crew(self) -> "Crew":
        if not self.agents:
            raise ValueError("crew must have at least one agent")
        if not self.tasks:
            raise ValueError("crew must have at least one task")
        agent_ids = [agent.id for agent in self.agents]
        if len(agent_ids) != len(set(agent_ids)):
            raise ValueError("agent ids must be unique within a crew")
        task_ids = [task.id for task in self.tasks]
        if len(task_ids) != len(set(task_ids)):
            raise ValueError("task ids must be unique within a crew")
        return self

    def find_agent(self, agent_id: str) -> Agent | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def snapshot(self) -> dict[str, Any]:
        return {
            "crew_id": self.id,
            "crew_name": self.name,
            "process": self.process.value,
            "agents": [{"id": a.id, "name": a.name, "role": a.role} for a in self.agents],
            "tasks": [
                {"id": t.id, "name": t.name, "description": t.description[:100]}
                for t in self.tasks
            ],
        }


class RunScope(BaseModel):
    workspace_id: str
    user_id: str


class ExecutionStep(BaseModel):
    id: str
    type: StepType
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    task_id: str | None = None
    agent_id: str | None = None
    agent_name: str | None = None
    tool_name: str | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class TaskResult(BaseModel):
    task_id: str
    agent_id: str
    output: str
    duration_ms: int
    usage_tokens: int = 0
    success: bool = True
    error: str | None = None


class ExecutionResult(BaseModel):
    run_id: str
    status: RunStatus
    start_time: datetime
    end_time: datetime
    total_duration_ms: int
    task_results: dict[str, TaskResult] = Field(default_factory=dict)
    final_output: TaskResult | None = None
    steps: list[ExecutionStep] = Field(default_factory=list)
    error: str | None = None

    @model_validator(mode="after")
    def validate_result(self) -> "ExecutionResult":
        if self.status not in TERMINAL_STATUSES:
            raise ValueError(f"execution result status must be terminal, got {self.status.value}")
        if self.status != RunStatus.COMPLETED and not self.error:
            raise ValueError("failed or cancelled results must carry an error")
        return self


class RunPatch(BaseModel):
    status: RunStatus
    end_time: datetime | None = None
    total_duration_ms: int | None = None
    task_results: dict[str, TaskResult] | None = None
    final_output: TaskResult | None = None
    steps: list[ExecutionStep] | None = None
    error: str | None = None


class RunRecord(BaseModel):
    run_id: str
    crew: dict[str, Any]
    scope: RunScope
    inputs: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    total_duration_ms: int | None = None
    task_results: dict[str, TaskResult] = Field(default_factory=dict)
    final_output: TaskResult | None = None
    steps: list[ExecutionStep] = Field(default_factory=list)
    error: str | None = None

    def apply(self, patch: RunPatch) -> "RunRecord":
        updates = patch.model_dump(exclude_none=True, exclude={"task_results", "final_output", "steps"})
        if patch.task_results is not None:
            updates["task_results"] = patch.task_results
        if patch.final_output is not None:
            updates["final_output"] = patch.final_output
        if patch.steps is not None:
            updates["steps"] = patch.steps
        return self.model_copy(update=updates)
