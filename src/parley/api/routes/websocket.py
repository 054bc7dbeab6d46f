"""Webchat over WebSocket.

Frames are JSON envelopes::

    {"type": "req", "id": "1", "method": "chat", "params": {"message": "hi"}}
    {"type": "res", "id": "1", "ok": true, "payload": {...}}
    {"type": "event", "event": "agent_text", "payload": {...}}

Methods: ``chat`` (streams agent events, then answers), ``status`` and
``reset``. A ``{"type": "event", "event": "ping"}`` frame is answered with
``pong``.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from parley.api.middleware.auth import websocket_authorized
from parley.gateway import InboundEvent
from parley.sessions.store import session_key

logger = structlog.get_logger()

router = APIRouter()

WEBCHAT_CHANNEL = "webchat"


def _response(request_id: Any, payload: dict[str, Any] | None = None, error: str | None = None) -> dict:
    frame: dict[str, Any] = {"type": "res", "id": request_id, "ok": error is None}
    if error is None:
        frame["payload"] = payload or {}
    else:
        frame["error"] = error
    return frame


async def _handle_chat(websocket: WebSocket, peer_id: str, request_id: Any, params: dict) -> None:
    message = str(params.get("message") or "").strip()
    if not message:
        await websocket.send_json(_response(request_id, error="params.message is required"))
        return

    dispatcher = websocket.app.state.dispatcher
    event = InboundEvent(channel=WEBCHAT_CHANNEL, peer_id=peer_id, text=message)
    parts: list[str] = []
    error: str | None = None
    async for agent_event in dispatcher.stream(event):
        if agent_event.type == "text" and agent_event.content:
            parts.append(agent_event.content)
        elif agent_event.type == "error":
            error = agent_event.error
        await websocket.send_json({
            "type": "event",
            "event": f"agent_{agent_event.type}",
            "payload": agent_event.to_wire(),
        })

    if error:
        await websocket.send_json(_response(request_id, error=error))
    else:
        await websocket.send_json(_response(request_id, {"text": "".join(parts)}))


async def _handle_status(websocket: WebSocket, peer_id: str, request_id: Any) -> None:
    state = websocket.app.state
    session = await state.sessions.get(session_key(WEBCHAT_CHANNEL, peer_id))
    await websocket.send_json(_response(request_id, {
        "peer_id": peer_id,
        "provider": state.provider.name,
        "model": state.provider.model,
        "messages": len(session.messages) if session else 0,
        "tools": len(state.registry.tools),
    }))


async def _handle_reset(websocket: WebSocket, peer_id: str, request_id: Any) -> None:
    reset = await websocket.app.state.sessions.reset(session_key(WEBCHAT_CHANNEL, peer_id))
    await websocket.send_json(_response(request_id, {"reset": reset}))


@router.websocket("/ws")
async def webchat(websocket: WebSocket) -> None:
    if not websocket_authorized(websocket):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    client_id = websocket.query_params.get("client_id") or uuid.uuid4().hex[:12]
    peer_id = f"webchat:{client_id}"
    logger.info("webchat.connected", peer_id=peer_id)
    await websocket.send_json({"type": "event", "event": "connected", "payload": {"peer_id": peer_id}})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(_response(None, error="Invalid JSON"))
                continue
            if not isinstance(frame, dict):
                await websocket.send_json(_response(None, error="Frame must be an object"))
                continue

            if frame.get("type") == "event" and frame.get("event") == "ping":
                await websocket.send_json({"type": "event", "event": "pong", "payload": {}})
                continue

            request_id = frame.get("id")
            if frame.get("type") != "req":
                await websocket.send_json(_response(request_id, error="Unsupported frame type"))
                continue

            method = frame.get("method")
            params = frame.get("params") or {}
            if not isinstance(params, dict):
                await websocket.send_json(_response(request_id, error="params must be an object"))
                continue
            if method == "chat":
                await _handle_chat(websocket, peer_id, request_id, params)
            elif method == "status":
                await _handle_status(websocket, peer_id, request_id)
            elif method == "reset":
                await _handle_reset(websocket, peer_id, request_id)
            else:
                await websocket.send_json(_response(request_id, error=f"Unknown method: {method}"))
    except WebSocketDisconnect:
        logger.info("webchat.disconnected", peer_id=peer_id)
