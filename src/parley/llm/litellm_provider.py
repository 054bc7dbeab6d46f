"""Incremental-delta provider: OpenAI-style streaming through LiteLLM.

Text arrives as per-token deltas. Tool calls arrive as fragments keyed by
index; only the first fragment of a call carries its id and name, later ones
append to the JSON argument string. Fragments are folded into one in-flight
buffer which is flushed when a different call starts or the stream signals
that it has finished.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import litellm
import structlog

from parley.agent.types import (
    ChatMessage,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    new_call_id,
)
from parley.config import OpenAIProviderConfig
from parley.llm.base import LLMProvider

logger = structlog.get_logger()

# Suppress litellm's noisy logging
litellm.suppress_debug_info = True
litellm.drop_params = True


@dataclass
class _PendingToolCall:
    id: str
    index: int | None = None
    name: str = ""
    arguments: str = ""

    def finish(self) -> ToolCall | None:
        if not self.name:
            logger.warning("provider.openai.drop_partial_tool_call", call_id=self.id)
            return None
        return ToolCall(id=self.id, name=self.name, arguments=self.arguments or "{}")


def to_openai_messages(
    messages: list[ChatMessage],
    system_prompt: str | None = None,
) -> list[dict[str, Any]]:
    """Translate history to chat-completions messages (system prompt first)."""
    wire: list[dict[str, Any]] = []
    if system_prompt:
        wire.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if msg.role == "tool":
            wire.append({
                "role": "tool",
                "content": msg.content,
                "tool_call_id": msg.tool_call_id or "",
            })
        elif msg.role == "assistant" and msg.tool_calls:
            wire.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [tc.to_dict() for tc in msg.tool_calls],
            })
        else:
            wire.append({"role": msg.role, "content": msg.content})
    return wire


def to_openai_tools(tools: list[ToolDefinition] | None) -> list[dict[str, Any]] | None:
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def _usage_from(raw: Any) -> TokenUsage | None:
    if raw is None:
        return None
    prompt = getattr(raw, "prompt_tokens", None) or 0
    completion = getattr(raw, "completion_tokens", None) or 0
    total = getattr(raw, "total_tokens", None) or prompt + completion
    if not (prompt or completion or total):
        return None
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


class LiteLLMProvider(LLMProvider):
    """Streams any LiteLLM chat model and folds tool-call deltas."""

    name = "openai"

    def __init__(self, config: OpenAIProviderConfig) -> None:
        super().__init__()
        self.config = config
        logger.info(
            "provider.openai.initialized",
            model=config.model,
            api_base=config.api_base or "default",
        )

    @property
    def model(self) -> str:
        return self.config.model

    async def _open_stream(self, kwargs: dict[str, Any]) -> Any:
        """Start the stream, trying fallback models if the primary request fails."""
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            logger.error("provider.openai.error", model=kwargs["model"], error=str(e))

            for fallback in self.config.fallback_models:
                logger.info("provider.openai.fallback", fallback_model=fallback)
                try:
                    response = await litellm.acompletion(**{**kwargs, "model": fallback})
                    logger.info("provider.openai.fallback.success", model=fallback)
                    return response
                except Exception as fallback_err:
                    logger.error(
                        "provider.openai.fallback.error",
                        model=fallback,
                        error=str(fallback_err),
                    )

            raise

    def _fold(
        self,
        pending: _PendingToolCall | None,
        fragment: Any,
    ) -> tuple[ToolCall | None, _PendingToolCall]:
        """Merge one tool-call fragment; returns (flushed call, in-flight buffer)."""
        frag_id = getattr(fragment, "id", None)
        index = getattr(fragment, "index", None)
        function = getattr(fragment, "function", None)
        name = getattr(function, "name", None) if function is not None else None
        arguments = getattr(function, "arguments", None) if function is not None else None

        starts_new = (
            pending is None
            or bool(frag_id and frag_id != pending.id)
            or (index is not None and pending.index is not None and index != pending.index)
        )

        flushed: ToolCall | None = None
        if starts_new:
            if pending is not None:
                flushed = pending.finish()
            pending = _PendingToolCall(id=frag_id or new_call_id(), index=index)

        if name:
            pending.name = name
        if arguments:
            pending.arguments += arguments
        return flushed, pending

    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": to_openai_messages(messages, system_prompt),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
            "drop_params": True,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        wire_tools = to_openai_tools(tools)
        if wire_tools:
            kwargs["tools"] = wire_tools

        start = time.monotonic()
        self.request_count += 1
        request_id = self.request_count
        logger.info(
            "provider.openai.request",
            request_id=request_id,
            model=self.config.model,
            message_count=len(kwargs["messages"]),
            has_tools=bool(wire_tools),
        )

        pending: _PendingToolCall | None = None
        usage: TokenUsage | None = None
        try:
            stream = await self._open_stream(kwargs)
            async for chunk in stream:
                usage = _usage_from(getattr(chunk, "usage", None)) or usage

                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                choice = choices[0]

                delta = getattr(choice, "delta", None)
                if delta is not None:
                    content = getattr(delta, "content", None)
                    if content:
                        yield StreamChunk.of_text(content)
                    for fragment in getattr(delta, "tool_calls", None) or []:
                        flushed, pending = self._fold(pending, fragment)
                        if flushed:
                            yield StreamChunk.of_tool_call(flushed)

                if getattr(choice, "finish_reason", None) and pending is not None:
                    flushed = pending.finish()
                    pending = None
                    if flushed:
                        yield StreamChunk.of_tool_call(flushed)
        except Exception as e:
            logger.error("provider.openai.stream_failed", request_id=request_id, error=str(e))
            yield StreamChunk.of_error(str(e) or type(e).__name__)
            return

        # Streams that end without a finish signal still flush their last call
        if pending is not None:
            flushed = pending.finish()
            if flushed:
                yield StreamChunk.of_tool_call(flushed)

        self._track_usage(usage)
        logger.info(
            "provider.openai.response",
            request_id=request_id,
            tokens=usage.total_tokens if usage else None,
            duration=f"{time.monotonic() - start:.2f}s",
        )
        yield StreamChunk.of_done(usage)
