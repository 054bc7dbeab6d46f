"""Content-block provider for the Anthropic Messages API.

Text is streamed from ``text_delta`` events. Tool calls are read whole from
the accumulated message snapshot when a content block closes, so partial
JSON input never reaches the loop.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from typing import Any

import anthropic
import structlog

from parley.agent.types import (
    ChatMessage,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    parse_arguments,
)
from parley.config import AnthropicProviderConfig
from parley.llm.base import LLMProvider

logger = structlog.get_logger()


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content)


def _ensure_alternation(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Merge consecutive same-role messages; the API requires strict alternation."""
    merged: list[dict[str, Any]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            prev = merged[-1]
            prev["content"] = _as_blocks(prev["content"]) + _as_blocks(msg["content"])
        else:
            merged.append(dict(msg))
    return merged


def to_anthropic_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Translate history to Messages API turns. System messages are dropped."""
    wire: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            continue
        if msg.role == "tool":
            wire.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id or "",
                    "content": msg.content,
                }],
            })
        elif msg.role == "assistant" and msg.tool_calls:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": parse_arguments(tc.arguments),
                })
            wire.append({"role": "assistant", "content": blocks})
        else:
            wire.append({"role": msg.role, "content": msg.content})
    return _ensure_alternation(wire)


def to_anthropic_tools(tools: list[ToolDefinition] | None) -> list[dict[str, Any]] | None:
    if not tools:
        return None
    return [
        {"name": t.name, "description": t.description, "input_schema": t.parameters}
        for t in tools
    ]


class AnthropicProvider(LLMProvider):
    """Streams Claude models via ``AsyncAnthropic.messages.stream``."""

    name = "anthropic"

    def __init__(
        self,
        config: AnthropicProviderConfig,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.client = client or anthropic.AsyncAnthropic(api_key=config.api_key or None)
        logger.info("provider.anthropic.initialized", model=config.model)

    @property
    def model(self) -> str:
        return self.config.model

    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": to_anthropic_messages(messages),
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        wire_tools = to_anthropic_tools(tools)
        if wire_tools:
            kwargs["tools"] = wire_tools

        start = time.monotonic()
        self.request_count += 1
        request_id = self.request_count
        logger.info(
            "provider.anthropic.request",
            request_id=request_id,
            model=self.config.model,
            message_count=len(kwargs["messages"]),
            has_tools=bool(wire_tools),
        )

        emitted: set[str] = set()
        try:
            async with self.client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type == "content_block_delta":
                        delta = event.delta
                        if delta.type == "text_delta" and delta.text:
                            yield StreamChunk.of_text(delta.text)
                    elif event.type == "content_block_stop":
                        snapshot = stream.current_message_snapshot
                        for block in snapshot.content:
                            if block.type != "tool_use" or block.id in emitted:
                                continue
                            emitted.add(block.id)
                            yield StreamChunk.of_tool_call(ToolCall(
                                id=block.id,
                                name=block.name,
                                arguments=json.dumps(block.input or {}, ensure_ascii=False),
                            ))
                final = await stream.get_final_message()
        except Exception as e:
            logger.error("provider.anthropic.stream_failed", request_id=request_id, error=str(e))
            yield StreamChunk.of_error(str(e) or type(e).__name__)
            return

        usage = None
        if final.usage is not None:
            prompt = final.usage.input_tokens or 0
            completion = final.usage.output_tokens or 0
            usage = TokenUsage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=prompt + completion,
            )
        self._track_usage(usage)
        logger.info(
            "provider.anthropic.response",
            request_id=request_id,
            tokens=usage.total_tokens if usage else None,
            tool_calls=len(emitted),
            duration=f"{time.monotonic() - start:.2f}s",
        )
        yield StreamChunk.of_done(usage)
