"""Channel ingress endpoints."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, HTTPException, Request

from parley.channels.feishu import parse_feishu_event
from parley.gateway import InboundEvent
from parley.gateway.service import QueueUnavailableError

logger = structlog.get_logger()

router = APIRouter()


@router.post("/v1/channels/feishu/webhook")
async def feishu_webhook(request: Request) -> dict:
    """Feishu event subscription callback."""
    try:
        body = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    event = parse_feishu_event(body)
    if event.kind == "challenge":
        logger.info("channels.feishu.url_verification")
        return {"challenge": event.challenge}
    if event.kind == "invalid":
        raise HTTPException(status_code=400, detail=event.reason)

    idempotency_key = f"feishu:{event.event_id}"
    if request.app.state.idempotency.is_duplicate(idempotency_key):
        return {"message": "Event already processed"}

    logger.info("channels.feishu.event", event_id=event.event_id, event_type=event.event_type)
    if event.kind == "ignored":
        return {"message": event.reason}

    task_id = f"feishu-{event.event_id}-{uuid.uuid4().hex[:6]}"
    request.app.state.audit.record(
        task_id,
        "message_received",
        event.sender_id,
        "feishu",
        {"event_id": event.event_id, "text_length": len(event.text)},
    )

    inbound = InboundEvent(
        channel="feishu",
        peer_id=event.sender_id,
        text=event.text,
        reply_to=event.message_id,
        event_id=event.event_id,
        priority=1,
        metadata={"chat_id": event.chat_id},
    )
    try:
        result = await request.app.state.dispatcher.dispatch(inbound, task_id=task_id)
    except QueueUnavailableError as e:
        request.app.state.idempotency.forget(idempotency_key)
        raise HTTPException(status_code=503, detail=str(e)) from e

    if result.mode == "inline" and result.result is not None and not result.result.error:
        delivered = await request.app.state.channels.reply(
            "feishu", event.message_id, event.sender_id, result.result.text
        )
        return {"message": "Event processed", "task_id": task_id, "delivered": delivered}
    return {"message": "Event received", "task_id": task_id}
