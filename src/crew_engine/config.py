from __future__ import annotations

import os

from pydantic import BaseModel, model_validator

from crew_engine.llm.client import DEFAULT_OPENROUTER_BASE_URL

ENV_PREFIX = "CREW_ENGINE_"
TOOL_DETECTION_MODES = {"keyword", "json"}


def _env_text(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _env_float(name: str) -> float | None:
    value = _env_text(name)
    return float(value) if value is not None else None


class EngineSettings(BaseModel):
    db_path: str = ".crew_engine/runs.db"
    audit_log_path: str = ".crew_engine/audit.log"
    files_root: str = ".crew_engine/files"
    openrouter_api_key: str = ""
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL
    site_url: str = "http://localhost:3000"
    app_title: str = "Crew Engine"
    serper_api_key: str | None = None
    llm_request_timeout_seconds: float = 60.0
    task_timeout_seconds: float | None = None
    tool_timeout_seconds: float | None = 30.0
    tool_detection: str = "keyword"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_settings(self) -> "EngineSettings":
        if self.tool_detection not in TOOL_DETECTION_MODES:
            raise ValueError(
                f"tool_detection must be one of {sorted(TOOL_DETECTION_MODES)}, "
                f"got {self.tool_detection!r}"
            )
        if self.llm_request_timeout_seconds <= 0:
            raise ValueError("llm_request_timeout_seconds must be positive")
        if self.task_timeout_seconds is not None and self.task_timeout_seconds <= 0:
            raise ValueError("task_timeout_seconds must be positive")
        if self.tool_timeout_seconds is not None and self.tool_timeout_seconds <= 0:
            raise ValueError("tool_timeout_seconds must be positive")
        return self

    @classmethod
    def from_env(cls) -> "EngineSettings":
        values: dict[str, object] = {
            "db_path": _env_text("DB_PATH"),
            "audit_log_path": _env_text("AUDIT_LOG_PATH"),
            "files_root": _env_text("FILES_ROOT"),
            "openrouter_api_key": _env_text("OPENROUTER_API_KEY"),
            "openrouter_base_url": _env_text("OPENROUTER_BASE_URL"),
            "site_url": _env_text("SITE_URL"),
            "app_title": _env_text("APP_TITLE"),
            "serper_api_key": _env_text("SERPER_API_KEY"),
            "llm_request_timeout_seconds": _env_float("LLM_REQUEST_TIMEOUT_SECONDS"),
            "task_timeout_seconds": _env_float("TASK_TIMEOUT_SECONDS"),
            "tool_timeout_seconds": _env_float("TOOL_TIMEOUT_SECONDS"),
            "tool_detection": _env_text("TOOL_DETECTION"),
            "log_level": _env_text("LOG_LEVEL"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})
