from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from crew_engine.models import Agent

INTENT_PHRASES = ("I need to use", "Let me search", "I will read")

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


@dataclass
class ToolInvocation:
    tool_name: str
    params: dict[str, Any] = field(default_factory=dict)


class ToolUseDetector(Protocol):
    """Decides which of an agent's tools a model response intends to invoke."""

    def detect(self, agent: Agent, response: str) -> list[ToolInvocation]: ...


class KeywordToolUseDetector:
    """String-matching heuristic.

    A tool fires when its name appears in the response (case-insensitive) or when
    the response contains a generic intent phrase. Several tools can fire for one
    response and false positives are expected.
    """

    def __init__(self, intent_phrases: tuple[str, ...] = INTENT_PHRASES) -> None:
        self.intent_phrases = intent_phrases

    def detect(self, agent: Agent, response: str) -> list[ToolInvocation]:
        if not agent.tools:
            return []
        lowered = response.lower()
        has_intent = any(phrase in response for phrase in self.intent_phrases)
        return [
            ToolInvocation(tool_name=tool)
            for tool in agent.tools
            if tool.lower() in lowered or has_intent
        ]


class JsonToolCallDetector:
    """Structured mode: the model answers with ``{"tool": ..., "params": {...}}``.

    Accepts a bare JSON object, a list of them, or fenced ```json blocks. Calls to
    tools outside the agent's allowed set are dropped.
    """

    def detect(self, agent: Agent, response: str) -> list[ToolInvocation]:
        if not agent.tools:
            return []
        allowed = set(agent.tools)
        invocations: list[ToolInvocation] = []
        for payload in _json_candidates(response):
            for call in payload if isinstance(payload, list) else [payload]:
                if not isinstance(call, dict):
                    continue
                name = call.get("tool") or call.get("name")
                if name not in allowed:
                    continue
                params = call.get("params") or call.get("arguments") or {}
                invocations.append(
                    ToolInvocation(tool_name=name, params=params if isinstance(params, dict) else {})
                )
        return invocations


def _json_candidates(response: str) -> list[Any]:
    blocks = _FENCED_JSON.findall(response)
    if not blocks:
        blocks = [response.strip()]
    candidates: list[Any] = []
    for block in blocks:
        try:
            candidates.append(json.loads(block))
        except json.JSONDecodeError:
            continue
    return candidates
