"""Provider adapter contract.

Every adapter turns a normalized history into one lazy sequence of
``StreamChunk`` values. The sequence always ends with exactly one terminal
chunk (``done`` or ``error``) and adapters never raise into the caller:
transport and vendor failures are reported as an ``error`` chunk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from parley.agent.types import ChatMessage, StreamChunk, TokenUsage, ToolDefinition


class ProviderError(Exception):
    """Raised inside an adapter; converted to an ``error`` chunk at its boundary."""


class LLMProvider(ABC):
    """One vendor wire protocol behind a single ``chat()`` call."""

    name: str = "provider"

    def __init__(self) -> None:
        self.request_count = 0
        self.total_tokens_used = 0

    @abstractmethod
    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream normalized chunks for one model round."""
        ...

    def _track_usage(self, usage: TokenUsage | None) -> None:
        if usage:
            self.total_tokens_used += usage.total_tokens

    @property
    def model(self) -> str:
        return ""

    @property
    def stats(self) -> dict[str, Any]:
        """Return usage statistics."""
        return {
            "provider": self.name,
            "model": self.model,
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
        }
