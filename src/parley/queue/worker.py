"""Background worker using arq (async Redis queue).

Jobs:
- process_message_job: run one queued conversation turn and deliver the reply

Each job gets exactly one delivery attempt. Failures are logged and audited,
never retried.
"""

from __future__ import annotations

from typing import Any, cast

import structlog
from arq.connections import RedisSettings

from parley.agent.loop import AgentLoop
from parley.audit import AuditLog
from parley.channels.manager import ChannelManager
from parley.config import get_config
from parley.gateway.models import Job
from parley.logging import setup_logging
from parley.runtime import Runtime, build_runtime

logger = structlog.get_logger()

AUDIT_RESULT_PREVIEW = 500


async def process_job(
    job: Job,
    agent: AgentLoop,
    channels: ChannelManager,
    audit: AuditLog,
) -> dict[str, Any]:
    """Re-run the conversation loop for ``job`` and deliver the buffered text once."""
    log = logger.bind(task_id=job.task_id, channel=job.channel, peer_id=job.peer_id)
    log.info("queue.job.started")

    parts: list[str] = []
    error: str | None = None
    async for event in agent.run(job.channel, job.peer_id, job.content):
        if event.type == "text":
            parts.append(event.content or "")
        elif event.type == "tool_start":
            audit.record(
                job.task_id, "tool_call", job.peer_id, job.channel,
                {"tool": event.tool_name, "args": event.tool_args},
            )
        elif event.type == "tool_result":
            audit.record(
                job.task_id, "tool_result", job.peer_id, job.channel,
                {"tool": event.tool_name, "result": (event.tool_result or "")[:AUDIT_RESULT_PREVIEW]},
            )
        elif event.type == "error":
            error = event.error
            audit.record(job.task_id, "task_error", job.peer_id, job.channel, {"error": error})
        elif event.type == "done":
            audit.record(
                job.task_id, "task_complete", job.peer_id, job.channel,
                {"usage": event.usage.to_wire() if event.usage else None},
            )

    if error is not None:
        log.warning("queue.job.not_delivered", reason="agent_error", error=error)
        return {"status": "failed", "task_id": job.task_id, "error": error}

    text = "".join(parts)
    if not text:
        log.warning("queue.job.not_delivered", reason="empty_reply")
        return {"status": "empty", "task_id": job.task_id}

    delivered = await channels.reply(job.channel, job.reply_to, job.peer_id, text)
    audit.record(
        job.task_id,
        "reply_delivered" if delivered else "reply_failed",
        job.peer_id,
        job.channel,
        {"length": len(text)},
    )
    if not delivered:
        log.error("queue.job.delivery_failed")
        return {"status": "delivery_failed", "task_id": job.task_id}

    log.info("queue.job.completed", length=len(text))
    return {"status": "completed", "task_id": job.task_id}


# ----- Job Functions -----


async def process_message_job(ctx: dict[str, object], payload: dict[str, Any]) -> dict[str, Any]:
    """arq entry point for one queued conversation turn."""
    runtime = cast(Runtime, ctx["runtime"])
    task_id = str(payload.get("task_id", "unknown"))
    try:
        job = Job.from_payload(payload)
        return await process_job(job, runtime.agent, runtime.channels, runtime.audit)
    except Exception as e:
        logger.exception("queue.job.failed", task_id=task_id, error=str(e))
        runtime.audit.record(
            task_id,
            "task_failed",
            str(payload.get("peer_id", "unknown")),
            str(payload.get("channel", "unknown")),
            {"error": str(e)},
        )
        return {"status": "failed", "task_id": task_id, "error": str(e)}


# ----- Worker Settings -----


async def startup(ctx: dict[str, object]) -> None:
    """Initialize worker resources on startup."""
    config = get_config()
    setup_logging(config.log_level, config.log_format, process="worker")
    logger.info("worker.starting")
    ctx["runtime"] = await build_runtime(config)
    logger.info("worker.started")


async def shutdown(ctx: dict[str, object]) -> None:
    """Clean up worker resources on shutdown."""
    logger.info("worker.stopping")
    runtime = ctx.get("runtime")
    if isinstance(runtime, Runtime):
        await runtime.close()
    logger.info("worker.stopped")


def get_redis_settings() -> RedisSettings:
    """Get Redis settings from app config."""
    return RedisSettings.from_dsn(get_config().queue.redis_url)


class WorkerSettings:
    """arq worker settings."""

    functions = [process_message_job]

    redis_settings = get_redis_settings()
    queue_name = get_config().queue.queue_name

    on_startup = startup
    on_shutdown = shutdown

    max_jobs = get_config().queue.max_jobs
    job_timeout = get_config().queue.job_timeout_s
    keep_result = 3600
    retry_jobs = False
    max_tries = 1
