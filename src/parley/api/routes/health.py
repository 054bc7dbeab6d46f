"""Health check endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    """Health check: status, uptime, provider info."""
    state = request.app.state
    return {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": round(time.time() - state.started_at, 1),
        "provider": state.provider.stats,
        "tools": len(state.registry.tools),
        "plugins": sorted(state.plugins.loaded),
        "channels": state.channels.names(),
        "queue_enabled": state.dispatcher.queue is not None,
    }
