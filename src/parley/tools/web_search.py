"""Web search tool (no backend wired up yet)."""

from __future__ import annotations

import json
from typing import Any

from parley.agent.tools import Tool


class WebSearchTool(Tool):
    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web for current information. "
            "Returns search results with titles, snippets, and URLs."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query."},
            },
            "required": ["query"],
        }

    async def execute(self, query: str = "", **_: Any) -> str:
        return json.dumps({
            "note": "Web search is not configured. Set up a search API provider plugin.",
            "query": query,
            "results": [],
        }, ensure_ascii=False)
