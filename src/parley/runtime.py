"""Wires the long-lived components shared by the API and worker processes."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from parley.agent.loop import AgentLoop
from parley.agent.reflection import reflect_on_conversation
from parley.agent.tools import ToolRegistry
from parley.audit import AuditLog
from parley.channels.feishu import FeishuChannel
from parley.channels.log import LogChannel
from parley.channels.manager import ChannelManager
from parley.channels.webhook import WebhookChannel
from parley.config import ParleyConfig
from parley.extensions.loader import PluginLoader
from parley.llm.base import LLMProvider
from parley.llm.factory import build_provider
from parley.sessions.store import SessionStore
from parley.tools.builtin import register_builtin_tools

logger = structlog.get_logger()


@dataclass
class Runtime:
    config: ParleyConfig
    provider: LLMProvider
    registry: ToolRegistry
    plugins: PluginLoader
    sessions: SessionStore
    agent: AgentLoop
    channels: ChannelManager
    audit: AuditLog

    async def close(self) -> None:
        await self.agent.wait_background()
        await self.channels.stop()
        await self.sessions.close()


def build_channels(config: ParleyConfig) -> ChannelManager:
    manager = ChannelManager()
    manager.register(LogChannel("log"))
    manager.register(LogChannel("api"))
    if config.channels.feishu.enabled:
        manager.register(FeishuChannel(config.channels.feishu))
    if config.channels.webhook.url:
        manager.register(
            WebhookChannel(config.channels.webhook.url, timeout_s=config.channels.webhook.timeout_s)
        )
    return manager


async def build_runtime(config: ParleyConfig, provider: LLMProvider | None = None) -> Runtime:
    """Build and start every component. ``provider`` overrides the configured one."""
    provider = provider or build_provider(config)

    registry = ToolRegistry()
    register_builtin_tools(registry, config)
    plugins = PluginLoader(config.plugins_dir, registry)
    await plugins.load_all()

    sessions = SessionStore(config.sessions_db_path, max_history=config.agent.max_history_messages)
    await sessions.initialize()

    hooks = [reflect_on_conversation] if config.agent.reflection_enabled else []
    agent = AgentLoop(provider, registry, sessions, config.agent, post_run_hooks=hooks)

    channels = build_channels(config)
    await channels.start()

    logger.info(
        "runtime.ready",
        provider=provider.name,
        model=provider.model,
        tools=len(registry.tools),
        channels=channels.names(),
    )
    return Runtime(
        config=config,
        provider=provider,
        registry=registry,
        plugins=plugins,
        sessions=sessions,
        agent=agent,
        channels=channels,
        audit=AuditLog(config.audit.dir, enabled=config.audit.enabled),
    )
