"""Tool listing and plugin rescan."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from parley.api.middleware.auth import verify_api_key

router = APIRouter()


@router.get("/v1/tools")
async def list_tools(
    request: Request,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    return {"tools": [d.to_dict() for d in request.app.state.registry.definitions()]}


@router.post("/v1/tools/rescan")
async def rescan_plugins(
    request: Request,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    plugins = await request.app.state.plugins.rescan()
    return {
        "plugins": plugins,
        "tools": [t["name"] for t in request.app.state.registry.list_tools()],
    }
