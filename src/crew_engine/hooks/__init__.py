"""Execution hooks for model and tool call observability."""

from .observability import EventLogger, HookEvent

__all__ = ["EventLogger", "HookEvent"]
