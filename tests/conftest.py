import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

_TEST_STATE_DIR = Path(tempfile.mkdtemp(prefix="crew_engine_tests_"))
os.environ.setdefault("CREW_ENGINE_DB_PATH", str(_TEST_STATE_DIR / "runs.db"))
os.environ.setdefault("CREW_ENGINE_AUDIT_LOG_PATH", str(_TEST_STATE_DIR / "audit.log"))
os.environ.setdefault("CREW_ENGINE_FILES_ROOT", str(_TEST_STATE_DIR / "files"))

from crew_engine.llm.models import CompletionRequest, CompletionResponse


class ScriptedModelService:
    """Deterministic stand-in for the Model Inference Service.

    Replies and delays are keyed by the task id carried in the request metadata.
    """

    def __init__(self) -> None:
        self.replies: dict[str, object] = {}
        self.delays: dict[str, float] = {}
        self.requests: list[CompletionRequest] = []
        self.events: list[tuple[str, str]] = []

    def request_for(self, task_id: str) -> CompletionRequest:
        for request in self.requests:
            if request.metadata.get("task_id") == task_id:
                return request
        raise AssertionError(f"no model request for task {task_id}")

    def started(self, task_id: str) -> bool:
        return ("start", task_id) in self.events

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        task_id = str(request.metadata.get("task_id"))
        self.requests.append(request)
        self.events.append(("start", task_id))
        await asyncio.sleep(self.delays.get(task_id, 0))
        reply = self.replies.get(task_id, f"output of {task_id}")
        if isinstance(reply, Exception):
            self.events.append(("error", task_id))
            raise reply
        content = reply(request) if callable(reply) else reply
        self.events.append(("end", task_id))
        return CompletionResponse(content=content, usage_tokens=10, model=request.model)


@pytest.fixture
def model_service() -> ScriptedModelService:
    return ScriptedModelService()
