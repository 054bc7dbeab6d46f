"""Buffered provider for Responses-API style endpoints.

The whole reply arrives in one JSON body and is replayed as chunks in output
order. Gateways in front of these endpoints answer with redirects, which are
followed by hand so the POST body survives the hop.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog

from parley.agent.types import (
    ChatMessage,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    new_call_id,
)
from parley.config import ResponsesProviderConfig
from parley.llm.base import LLMProvider, ProviderError

logger = structlog.get_logger()

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class RedirectError(ProviderError):
    """A redirect chain could not be followed."""


async def post_with_redirect(
    client: httpx.AsyncClient,
    url: str,
    body: bytes,
    headers: dict[str, str],
    max_redirects: int = 3,
) -> httpx.Response:
    """POST ``body`` and re-POST it to each redirect target.

    At most ``max_redirects`` hops are followed, so the endpoint sees at most
    ``max_redirects + 1`` requests.
    """
    current = url
    for _ in range(max_redirects + 1):
        response = await client.post(current, content=body, headers=headers)
        if response.status_code not in REDIRECT_STATUSES:
            return response

        location = response.headers.get("location")
        if not location:
            raise RedirectError(f"Redirect without Location header from {current}")
        target = str(httpx.URL(current).join(location))
        logger.debug("provider.responses.redirect", status=response.status_code, to=target)
        current = target

    raise RedirectError(f"Too many redirects (max {max_redirects})")


def to_responses_input(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            continue
        if msg.role == "tool":
            items.append({
                "type": "function_call_output",
                "call_id": msg.tool_call_id or "",
                "output": msg.content,
            })
        elif msg.role == "assistant":
            if msg.content or not msg.tool_calls:
                items.append({
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": msg.content}],
                })
            for tc in msg.tool_calls or []:
                items.append({
                    "type": "function_call",
                    "call_id": tc.id,
                    "name": tc.name,
                    "arguments": tc.arguments,
                })
        else:
            items.append({
                "role": msg.role,
                "content": [{"type": "input_text", "text": msg.content}],
            })
    return items


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or error)
    return str(error)


class ResponsesProvider(LLMProvider):
    """Non-streaming Responses-API endpoint authenticated by an access key."""

    name = "responses"

    def __init__(
        self,
        config: ResponsesProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.base_url = re.sub(r"/v1/?$", "", config.base_url).rstrip("/")
        self._transport = transport
        logger.info("provider.responses.initialized", model=config.model, base_url=self.base_url)

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def endpoint(self) -> str:
        params = {"ak": self.config.ak} if self.config.ak else None
        return str(httpx.URL(f"{self.base_url}/responses", params=params))

    def build_request(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.config.model,
            "input": to_responses_input(messages),
            "stream": False,
        }
        if system_prompt:
            body["instructions"] = system_prompt
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                }
                for t in tools
            ]
        return body

    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        body = json.dumps(
            self.build_request(messages, tools, system_prompt), ensure_ascii=False
        ).encode()
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        start = time.monotonic()
        self.request_count += 1
        request_id = self.request_count
        logger.info("provider.responses.request", request_id=request_id, model=self.config.model)

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.config.timeout_s,
                follow_redirects=False,
            ) as client:
                response = await post_with_redirect(
                    client, self.endpoint, body, headers, self.config.max_redirects
                )
            if not response.is_success:
                logger.error(
                    "provider.responses.api_error",
                    request_id=request_id,
                    status=response.status_code,
                    body=response.text[:500],
                )
                yield StreamChunk.of_error(f"API error {response.status_code}: {response.text}")
                return
            data = response.json()
        except Exception as e:
            logger.error("provider.responses.request_failed", request_id=request_id, error=str(e))
            yield StreamChunk.of_error(str(e) or type(e).__name__)
            return

        if not isinstance(data, dict):
            yield StreamChunk.of_error("Malformed response body")
            return
        if data.get("error"):
            yield StreamChunk.of_error(_error_message(data["error"]))
            return

        output = data.get("output") or []
        if not isinstance(output, list):
            yield StreamChunk.of_error("Malformed response body")
            return

        for item in output:
            if not isinstance(item, dict):
                continue
            kind = item.get("type")
            if kind == "message":
                content = item.get("content")
                for part in content if isinstance(content, list) else []:
                    if not isinstance(part, dict):
                        continue
                    if part.get("type") == "output_text" and part.get("text"):
                        yield StreamChunk.of_text(part["text"])
            elif kind == "function_call" and item.get("name"):
                yield StreamChunk.of_tool_call(ToolCall(
                    id=item.get("call_id") or item.get("id") or new_call_id(),
                    name=item["name"],
                    arguments=item.get("arguments") or "{}",
                ))

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            prompt = raw_usage.get("input_tokens") or 0
            completion = raw_usage.get("output_tokens") or 0
            usage = TokenUsage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=raw_usage.get("total_tokens") or prompt + completion,
            )
        self._track_usage(usage)
        logger.info(
            "provider.responses.response",
            request_id=request_id,
            tokens=usage.total_tokens if usage else None,
            duration=f"{time.monotonic() - start:.2f}s",
        )
        yield StreamChunk.of_done(usage)
