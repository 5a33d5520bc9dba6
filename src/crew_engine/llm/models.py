from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class CompletionRequest(BaseModel):
    model: str
    system_prompt: str
    user_prompt: str
    temperature: float = 0.7
    max_tokens: int = 4000
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_request(self) -> "CompletionRequest":
        if not self.model.strip():
            raise ValueError("model must not be empty")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        return self

    def to_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


class CompletionResponse(BaseModel):
    content: str
    usage_tokens: int = 0
    model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
