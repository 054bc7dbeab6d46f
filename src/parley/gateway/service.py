"""Dispatcher: routes inbound events to the inline or queued path."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING

import structlog

from parley.agent.loop import AgentLoop
from parley.agent.types import AgentStreamEvent
from parley.gateway.models import DispatchResult, InboundEvent, InlineResult, Job

if TYPE_CHECKING:
    from parley.queue.client import JobQueue

logger = structlog.get_logger()


class QueueUnavailableError(RuntimeError):
    """No queue transport is configured or it refused the job."""


class Dispatcher:
    """Single entrypoint for every inbound message."""

    def __init__(
        self,
        agent: AgentLoop,
        queue: JobQueue | None = None,
        queued_channels: Iterable[str] = (),
    ) -> None:
        self.agent = agent
        self.queue = queue
        self.queued_channels = {name.lower() for name in queued_channels}

    def should_queue(self, channel: str) -> bool:
        return self.queue is not None and channel.lower() in self.queued_channels

    async def stream(self, event: InboundEvent) -> AsyncIterator[AgentStreamEvent]:
        """Inline path: yield events as the loop produces them.

        An unexpected failure yields one ``error`` event, then ``done`` unless
        the loop already finished.
        """
        finished = False
        try:
            async for agent_event in self.agent.run(event.channel, event.peer_id, event.text):
                finished = agent_event.type == "done"
                yield agent_event
        except Exception as e:
            logger.exception("dispatch.inline_failed", channel=event.channel, peer_id=event.peer_id)
            yield AgentStreamEvent(type="error", error=str(e) or type(e).__name__)
            if not finished:
                yield AgentStreamEvent(type="done")

    async def run_inline(self, event: InboundEvent) -> InlineResult:
        """Inline path, collected into a single result."""
        result = InlineResult()
        parts: list[str] = []
        async for agent_event in self.stream(event):
            if agent_event.type == "text" and agent_event.content:
                parts.append(agent_event.content)
            elif agent_event.type == "tool_result":
                result.tool_calls += 1
            elif agent_event.type == "error":
                result.error = agent_event.error
            elif agent_event.type == "done":
                result.usage = agent_event.usage
        result.text = "".join(parts)
        return result

    async def enqueue(self, event: InboundEvent, task_id: str | None = None) -> Job:
        """Queued path: build a job and hand it to the transport."""
        if self.queue is None:
            raise QueueUnavailableError("No job queue configured")

        job = Job.from_event(event, task_id=task_id)
        job_id = await self.queue.enqueue(job)
        if job_id is None:
            raise QueueUnavailableError(f"Job {job.task_id} was not accepted by the queue")
        logger.info("dispatch.queued", task_id=job.task_id, channel=job.channel)
        return job

    async def dispatch(self, event: InboundEvent, task_id: str | None = None) -> DispatchResult:
        """Queue channels configured for it, run everything else inline."""
        if self.should_queue(event.channel):
            job = await self.enqueue(event, task_id=task_id)
            return DispatchResult(mode="queued", task_id=job.task_id, queued=True)
        return DispatchResult(mode="inline", task_id=task_id, result=await self.run_inline(event))
