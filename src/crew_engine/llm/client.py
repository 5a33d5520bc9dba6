from __future__ import annotations

from typing import Any, Protocol

import httpx

from crew_engine.hooks.observability import EventLogger

from .models import CompletionRequest, CompletionResponse

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class ModelInferenceError(RuntimeError):
    pass


class ModelInferenceService(Protocol):
    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...


class OpenRouterClient:
    """OpenAI-compatible chat completion client. Errors propagate; nothing is retried."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_OPENROUTER_BASE_URL,
        site_url: str = "http://localhost:3000",
        app_title: str = "Crew Engine",
        request_timeout_seconds: float = 60.0,
        logger: EventLogger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.site_url = site_url
        self.app_title = app_title
        self.request_timeout_seconds = request_timeout_seconds
        self.logger = logger or EventLogger()
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.site_url,
            "X-Title": self.app_title,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        body = {
            "model": request.model,
            "messages": request.to_messages(),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        self.logger.on_llm_call(model=request.model, phase="start")
        timeout = httpx.Timeout(self.request_timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=body,
                )
        except httpx.HTTPError as exc:
            self.logger.on_llm_call(model=request.model, phase="error", error=str(exc))
            raise ModelInferenceError(f"model call failed: {exc}") from exc

        if response.status_code >= 400:
            detail = response.text[:300]
            self.logger.on_llm_call(
                model=request.model, phase="error", status_code=response.status_code
            )
            raise ModelInferenceError(
                f"model call failed: HTTP {response.status_code} ({detail})"
            )

        payload = response.json()
        content = _extract_content(payload)
        if content is None:
            self.logger.on_llm_call(model=request.model, phase="error", error="empty response")
            raise ModelInferenceError("model call failed: response has no message content")

        usage = payload.get("usage") if isinstance(payload, dict) else None
        usage_tokens = _usage_total(usage)
        self.logger.on_llm_call(model=request.model, phase="success", usage_tokens=usage_tokens)
        return CompletionResponse(
            content=content,
            usage_tokens=usage_tokens,
            model=payload.get("model") or request.model,
            metadata={"usage": usage or {}},
        )


def _extract_content(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part.get("text", "") for part in content if isinstance(part, dict)]
        return "".join(parts)
    return None


def _usage_total(usage: Any) -> int:
    if not isinstance(usage, dict):
        return 0
    total = usage.get("total_tokens")
    if isinstance(total, int):
        return max(0, total)
    prompt = usage.get("prompt_tokens") or 0
    completion = usage.get("completion_tokens") or 0
    if isinstance(prompt, int) and isinstance(completion, int):
        return max(0, prompt + completion)
    return 0
