"""Conversation loop: Parley's brain.

Each round sends the session history and tool schemas to the provider,
streams text back to the caller, and collects tool calls. Collected calls
run in order once the round's stream ends and their results are appended to
the session before the next round. The loop stops when a round requests no
tools, when the provider reports an error, or when the round limit is hit.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from parley.agent.tools import ToolRegistry
from parley.agent.types import (
    AgentStreamEvent,
    ChatMessage,
    TokenUsage,
    ToolCall,
    normalize_history,
    parse_arguments,
)
from parley.config import AgentConfig
from parley.llm.base import LLMProvider
from parley.sessions.store import SessionStore

logger = structlog.get_logger()

PostRunHook = Callable[[list[ChatMessage], str, str], Awaitable[None]]


class AgentLoop:
    """Bounded think → act → observe loop over one injected provider."""

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        sessions: SessionStore,
        config: AgentConfig,
        post_run_hooks: list[PostRunHook] | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.sessions = sessions
        self.config = config
        self.post_run_hooks = list(post_run_hooks or [])
        self._background: set[asyncio.Task] = set()

    async def run(self, channel: str, peer_id: str, text: str) -> AsyncIterator[AgentStreamEvent]:
        """Run one conversation turn and yield caller-facing events.

        The final event is always a single ``done``, also after an ``error``.
        """
        session = await self.sessions.get_or_create(channel, peer_id)
        await self.sessions.append(session.id, ChatMessage(role="user", content=text))

        tools = self.registry.definitions() or None
        usage: TokenUsage | None = None
        tool_calls_made = 0
        rounds = 0
        exhausted = False

        logger.info("agent.start", session=session.id, provider=self.provider.name)

        while True:
            if rounds >= self.config.max_rounds:
                exhausted = True
                break
            rounds += 1

            history = normalize_history(await self.sessions.get_messages(session.id))
            logger.info(
                "agent.round",
                session=session.id,
                round=rounds,
                max=self.config.max_rounds,
                messages=len(history),
            )

            round_text = ""
            pending: list[ToolCall] = []
            failed = False

            async for chunk in self.provider.chat(history, tools, self.config.system_prompt):
                if chunk.type == "text":
                    round_text += chunk.content or ""
                    yield AgentStreamEvent(type="text", content=chunk.content)
                elif chunk.type == "tool_call" and chunk.tool_call:
                    pending.append(chunk.tool_call)
                elif chunk.type == "done":
                    if chunk.usage:
                        usage = usage + chunk.usage if usage else chunk.usage
                        logger.debug(
                            "agent.usage",
                            round=rounds,
                            prompt=chunk.usage.prompt_tokens,
                            completion=chunk.usage.completion_tokens,
                        )
                elif chunk.type == "error":
                    logger.warning("agent.provider_error", round=rounds, error=chunk.error)
                    yield AgentStreamEvent(type="error", error=chunk.error)
                    failed = True
                    break

            if failed:
                break

            if round_text or pending:
                await self.sessions.append(
                    session.id,
                    ChatMessage(
                        role="assistant",
                        content=round_text,
                        tool_calls=pending or None,
                    ),
                )

            if not pending:
                break

            for tc in pending:
                args = parse_arguments(tc.arguments)
                logger.info("agent.tool_call", tool=tc.name, call_id=tc.id, round=rounds)
                yield AgentStreamEvent(type="tool_start", tool_name=tc.name, tool_args=args)

                result = await self.registry.execute(tc.name, args)
                tool_calls_made += 1

                yield AgentStreamEvent(type="tool_result", tool_name=tc.name, tool_result=result)
                await self.sessions.append(
                    session.id,
                    ChatMessage(role="tool", content=result, tool_call_id=tc.id),
                )

        if exhausted:
            logger.warning(
                "agent.max_rounds",
                channel=channel,
                peer_id=peer_id,
                rounds=rounds,
            )

        logger.info(
            "agent.complete",
            session=session.id,
            rounds=rounds,
            tool_calls=tool_calls_made,
            tokens=usage.total_tokens if usage else None,
        )
        yield AgentStreamEvent(type="done", usage=usage)

        self._spawn_post_run(session.id, channel, peer_id)

    def _spawn_post_run(self, session_id: str, channel: str, peer_id: str) -> None:
        for hook in self.post_run_hooks:
            task = asyncio.create_task(self._run_hook(hook, session_id, channel, peer_id))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _run_hook(
        self,
        hook: PostRunHook,
        session_id: str,
        channel: str,
        peer_id: str,
    ) -> None:
        try:
            messages = await self.sessions.get_messages(session_id)
            await hook(messages, channel, peer_id)
        except Exception as e:
            logger.warning(
                "agent.post_run.failed",
                hook=getattr(hook, "__name__", repr(hook)),
                error=str(e),
            )

    async def wait_background(self) -> None:
        """Wait for detached post-run tasks (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
