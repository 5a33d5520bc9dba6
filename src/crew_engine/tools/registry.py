from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

import httpx

from crew_engine.models import RunScope
from crew_engine.tools.records import InMemoryRecordStore

ToolHandler = Callable[[dict[str, Any], RunScope], Awaitable[dict[str, Any]]]

DEFAULT_SERPER_URL = "https://google.serper.dev/search"
SCRAPE_MAX_CHARS = 5000


class ToolRegistry(Protocol):
    async def invoke(
        self, tool_name: str, params: dict[str, Any], scope: RunScope
    ) -> dict[str, Any]: ...


def mock_tool_result(tool_name: str) -> dict[str, Any]:
    return {"result": f"Tool {tool_name} executed (mock)", "success": True, "mock": True}


class BuiltinToolRegistry:
    """File lookup, web search, web scrape and structured-store query tools."""

    def __init__(
        self,
        *,
        files_root: str = ".crew_engine/files",
        record_store: InMemoryRecordStore | None = None,
        serper_api_key: str | None = None,
        serper_url: str = DEFAULT_SERPER_URL,
        request_timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.files_root = Path(files_root).expanduser().resolve()
        self.record_store = record_store or InMemoryRecordStore()
        self.serper_api_key = serper_api_key
        self.serper_url = serper_url
        self.request_timeout_seconds = request_timeout_seconds
        self.transport = transport
        self._handlers: dict[str, ToolHandler] = {
            "FileReadTool": self._read_file,
            "web_search": self._web_search,
            "SerperDevTool": self._web_search,
            "ScrapeWebsiteTool": self._scrape_website,
            "database_query": self._database_query,
        }

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._handlers)

    def register(self, tool_name: str, handler: ToolHandler) -> None:
        self._handlers[tool_name] = handler

    async def invoke(
        self, tool_name: str, params: dict[str, Any], scope: RunScope
    ) -> dict[str, Any]:
        handler = self._handlers.get(tool_name)
        if handler is None:
            return mock_tool_result(tool_name)
        return await handler(params, scope)

    async def _read_file(self, params: dict[str, Any], scope: RunScope) -> dict[str, Any]:
        file_id = params.get("file_id") or params.get("fileId")
        if not file_id:
            return {"error": "file_id is required", "success": False}
        workspace_id = scope.workspace_id
        if not workspace_id or "/" in workspace_id or "\\" in workspace_id or ".." in workspace_id:
            return {"error": "Invalid workspace id", "success": False}
        workspace_dir = (self.files_root / workspace_id).resolve()
        if workspace_dir == self.files_root or not workspace_dir.is_relative_to(self.files_root):
            return {"error": "Workspace is outside the files root", "success": False}
        target = (workspace_dir / str(file_id)).resolve()
        if not target.is_relative_to(workspace_dir):
            return {"error": "File is outside the workspace", "success": False}
        if not target.is_file():
            return {"error": "File not found", "success": False}
        return {"content": target.read_text(encoding="utf-8"), "success": True}

    async def _web_search(self, params: dict[str, Any], scope: RunScope) -> dict[str, Any]:
        query = params.get("query") or params.get("search_query")
        if not self.serper_api_key or not query:
            return {
                "results": [
                    {
                        "title": "Search Result 1",
                        "snippet": "Sample search result...",
                        "url": "https://example.com/1",
                    },
                    {
                        "title": "Search Result 2",
                        "snippet": "Another result...",
                        "url": "https://example.com/2",
                    },
                ],
                "success": True,
                "mock": True,
            }
        timeout = httpx.Timeout(self.request_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            response = await client.post(
                self.serper_url,
                headers={"X-API-KEY": self.serper_api_key, "Content-Type": "application/json"},
                json={"q": query},
            )
        if response.status_code >= 400:
            return {"error": f"search failed: HTTP {response.status_code}", "success": False}
        organic = response.json().get("organic") or []
        return {
            "results": [
                {
                    "title": row.get("title", ""),
                    "snippet": row.get("snippet", ""),
                    "url": row.get("link", ""),
                }
                for row in organic
                if isinstance(row, dict)
            ],
            "success": True,
        }

    async def _scrape_website(self, params: dict[str, Any], scope: RunScope) -> dict[str, Any]:
        url = params.get("url")
        if not url:
            return {"error": "url is required", "success": False}
        timeout = httpx.Timeout(self.request_timeout_seconds)
        async with httpx.AsyncClient(
            timeout=timeout, transport=self.transport, follow_redirects=True
        ) as client:
            response = await client.get(str(url))
        if response.status_code >= 400:
            return {"error": f"scrape failed: HTTP {response.status_code}", "success": False}
        return {"content": response.text[:SCRAPE_MAX_CHARS], "success": True}

    async def _database_query(self, params: dict[str, Any], scope: RunScope) -> dict[str, Any]:
        collection = params.get("collection") or params.get("model")
        if not collection:
            return {"error": "collection is required", "success": False}
        where = params.get("where") or {}
        if not isinstance(where, dict):
            return {"error": "where must be an object", "success": False}
        rows = self.record_store.query(
            str(collection),
            workspace_id=scope.workspace_id,
            where=where,
            limit=int(params.get("limit", 50)),
        )
        return {"result": rows, "success": True}
