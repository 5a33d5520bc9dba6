"""Model Inference Service contract and the OpenRouter-compatible client."""

from .client import (
    DEFAULT_OPENROUTER_BASE_URL,
    ModelInferenceError,
    ModelInferenceService,
    OpenRouterClient,
)
from .models import CompletionRequest, CompletionResponse

__all__ = [
    "CompletionRequest",
    "CompletionResponse",
    "DEFAULT_OPENROUTER_BASE_URL",
    "ModelInferenceError",
    "ModelInferenceService",
    "OpenRouterClient",
]
