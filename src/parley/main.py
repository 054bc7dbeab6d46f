"""Parley FastAPI application entrypoint."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from parley.api.middleware.idempotency import IdempotencyStore
from parley.config import ParleyConfig, get_config
from parley.gateway import Dispatcher
from parley.llm.base import LLMProvider
from parley.logging import setup_logging
from parley.queue.client import ArqJobQueue, JobQueue
from parley.runtime import build_runtime

logger = structlog.get_logger()


def create_app(
    config: ParleyConfig | None = None,
    *,
    provider: LLMProvider | None = None,
    queue: JobQueue | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    ``provider`` and ``queue`` replace the configured ones (tests, embedding).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application startup/shutdown lifecycle."""
        cfg = config or get_config()
        setup_logging(level=cfg.log_level, fmt=cfg.log_format)
        logger.info("parley.starting", version="0.1.0", provider=cfg.agent.default_provider)

        runtime = await build_runtime(cfg, provider=provider)

        job_queue = queue
        if job_queue is None and cfg.queue.enabled:
            job_queue = ArqJobQueue(cfg.queue.redis_url, cfg.queue.queue_name)

        dispatcher = Dispatcher(
            runtime.agent,
            queue=job_queue,
            queued_channels=cfg.queue.queued_channels,
        )

        # Store on app state
        app.state.config = cfg
        app.state.runtime = runtime
        app.state.provider = runtime.provider
        app.state.registry = runtime.registry
        app.state.plugins = runtime.plugins
        app.state.sessions = runtime.sessions
        app.state.agent = runtime.agent
        app.state.channels = runtime.channels
        app.state.audit = runtime.audit
        app.state.dispatcher = dispatcher
        app.state.idempotency = IdempotencyStore()
        app.state.started_at = time.time()

        logger.info(
            "parley.ready",
            tools=list(runtime.registry.tools.keys()),
            queue=job_queue is not None,
        )

        yield

        # Shutdown
        logger.info("parley.shutting_down")
        if job_queue is not None:
            await job_queue.close()
        await runtime.close()
        logger.info("parley.stopped")

    app = FastAPI(
        title="Parley",
        version="0.1.0",
        description="Conversational agent gateway with multi-provider tool calling.",
        lifespan=lifespan,
    )

    # Register routes
    from parley.api.routes.channels import router as channels_router
    from parley.api.routes.chat import router as chat_router
    from parley.api.routes.health import router as health_router
    from parley.api.routes.sessions import router as sessions_router
    from parley.api.routes.tools import router as tools_router
    from parley.api.routes.websocket import router as websocket_router

    app.include_router(health_router, tags=["health"])
    app.include_router(chat_router, tags=["chat"])
    app.include_router(sessions_router, tags=["sessions"])
    app.include_router(tools_router, tags=["tools"])
    app.include_router(channels_router, tags=["channels"])
    app.include_router(websocket_router, tags=["webchat"])

    return app


app = create_app()


def main() -> None:
    """Run the server directly."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format)
    uvicorn.run(
        "parley.main:app",
        host=config.host,
        port=config.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
