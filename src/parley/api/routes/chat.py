"""Chat endpoints: inline (JSON or SSE) and queued."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from parley.api.middleware.auth import verify_api_key
from parley.gateway import InboundEvent
from parley.gateway.service import QueueUnavailableError


router = APIRouter()


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    channel: str = Field(default="api")
    peer_id: str = Field(default="default")
    stream: bool = False
    reply_to: str | None = None
    priority: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_event(self) -> InboundEvent:
        return InboundEvent(
            channel=self.channel.strip() or "api",
            peer_id=self.peer_id.strip() or "default",
            text=self.message,
            reply_to=self.reply_to,
            priority=self.priority,
            metadata=self.metadata,
        )


class ChatResponse(BaseModel):
    session_id: str
    response: str
    usage: dict[str, int] | None = None
    tool_calls_made: int = 0
    error: str | None = None


@router.post("/v1/chat", response_model=None)
async def chat(
    request: Request,
    body: ChatRequest,
    _api_key: str | None = Depends(verify_api_key),
) -> ChatResponse | StreamingResponse:
    """Run one conversation turn inline."""
    dispatcher = request.app.state.dispatcher
    event = body.to_event()

    if body.stream:
        async def sse() -> AsyncIterator[str]:
            async for agent_event in dispatcher.stream(event):
                yield f"data: {json.dumps(agent_event.to_wire(), ensure_ascii=False)}\n\n"

        return StreamingResponse(sse(), media_type="text/event-stream")

    result = await dispatcher.run_inline(event)
    return ChatResponse(
        session_id=f"{event.channel}:{event.peer_id}",
        response=result.text,
        usage=result.usage.to_wire() if result.usage else None,
        tool_calls_made=result.tool_calls,
        error=result.error,
    )


@router.post("/v1/chat/queue", status_code=202)
async def chat_queue(
    request: Request,
    body: ChatRequest,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    """Enqueue one conversation turn for a worker; the reply goes to the channel."""
    dispatcher = request.app.state.dispatcher
    event = body.to_event()
    try:
        job = await dispatcher.enqueue(event)
    except QueueUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    request.app.state.audit.record(
        job.task_id, "message_queued", job.peer_id, job.channel, {"length": len(job.content)}
    )
    return {"status": "queued", "task_id": job.task_id}
