"""API key authentication."""

from __future__ import annotations

import hmac

import structlog
from fastapi import HTTPException, Request, Security, WebSocket
from fastapi.security import APIKeyHeader

logger = structlog.get_logger()

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _matches(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str | None:
    """Verify the API key if auth is enabled."""
    config_key = request.app.state.config.api_key

    # No auth configured, allow all
    if not config_key:
        return None

    if not api_key:
        logger.warning("auth.missing_key", path=request.url.path)
        raise HTTPException(status_code=401, detail="Missing API key. Provide X-API-Key header.")

    if not _matches(api_key, config_key):
        logger.warning("auth.invalid_key", path=request.url.path)
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return api_key


def websocket_authorized(websocket: WebSocket) -> bool:
    """Accept the key from the X-API-Key header or an ``api_key`` query parameter."""
    config_key = websocket.app.state.config.api_key
    if not config_key:
        return True
    provided = websocket.headers.get("x-api-key") or websocket.query_params.get("api_key") or ""
    if provided and _matches(provided, config_key):
        return True
    logger.warning("auth.websocket_rejected", path=websocket.url.path)
    return False
