"""Session management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from parley.api.middleware.auth import verify_api_key

router = APIRouter()


@router.get("/v1/sessions")
async def list_sessions(
    request: Request,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    sessions = await request.app.state.sessions.list_sessions()
    return {"sessions": [s.summary() for s in sessions]}


@router.get("/v1/sessions/{session_id}")
async def get_session(
    request: Request,
    session_id: str,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    session = await request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {**session.summary(), "messages": [m.to_dict() for m in session.messages]}


@router.post("/v1/sessions/{session_id}/reset")
async def reset_session(
    request: Request,
    session_id: str,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    if not await request.app.state.sessions.reset(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "reset", "session_id": session_id}
