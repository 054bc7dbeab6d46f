"""Parley configuration, loaded from parley.yaml and the environment."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "responses"]

_DEFAULT_SYSTEM_PROMPT = (
    "You are Parley, a helpful personal AI assistant. Be concise, accurate, and friendly."
)


def _load_yaml_config() -> dict[str, Any]:
    """Load parley.yaml from PARLEY_CONFIG_PATH or default locations."""
    config_path = os.getenv("PARLEY_CONFIG_PATH")
    search_paths = (
        [Path(config_path)]
        if config_path
        else [
            Path("/etc/parley/parley.yaml"),
            Path("data/parley.yaml"),
            Path("parley.yaml"),
        ]
    )
    for path in search_paths:
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}
    return {}


def _parse_str_list(value: Any) -> list[str]:
    """Accept lists, JSON arrays, or comma-separated strings."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in text.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value).strip()] if str(value).strip() else []


class OpenAIProviderConfig(BaseSettings):
    """Incremental-delta provider (any LiteLLM chat model)."""

    model: str = Field(default="openai/gpt-4o", description="LiteLLM model identifier")
    api_key: str = Field(default="", description="API key for the provider")
    api_base: str | None = Field(default=None, description="Custom API base URL")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)
    fallback_models: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("fallback_models", mode="before")
    @classmethod
    def _parse_fallback_models(cls, value: Any) -> list[str]:
        return _parse_str_list(value)

    model_config = SettingsConfigDict(env_prefix="PARLEY_OPENAI_")


class AnthropicProviderConfig(BaseSettings):
    """Content-block streaming provider."""

    model: str = Field(default="claude-sonnet-4-20250514")
    api_key: str = Field(default="")
    max_tokens: int = Field(default=4096, gt=0)

    model_config = SettingsConfigDict(env_prefix="PARLEY_ANTHROPIC_")


class ResponsesProviderConfig(BaseSettings):
    """Buffered Responses-API provider."""

    model: str = Field(default="")
    base_url: str = Field(default="", description="Base URL; a trailing /v1 is stripped")
    ak: str = Field(default="", description="Access key sent as the 'ak' query parameter")
    api_key: str = Field(default="", description="Optional bearer token")
    max_redirects: int = Field(default=3, ge=0, le=10)
    timeout_s: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="PARLEY_RESPONSES_")


class ProvidersConfig(BaseModel):
    """All provider sub-configs."""

    openai: OpenAIProviderConfig = Field(default_factory=OpenAIProviderConfig)
    anthropic: AnthropicProviderConfig = Field(default_factory=AnthropicProviderConfig)
    responses: ResponsesProviderConfig = Field(default_factory=ResponsesProviderConfig)


class AgentConfig(BaseSettings):
    """Conversation loop behavior."""

    default_provider: ProviderName = "openai"
    system_prompt: str = Field(default=_DEFAULT_SYSTEM_PROMPT)
    max_rounds: int = Field(default=10, gt=0, description="Max model rounds per turn")
    max_history_messages: int = Field(default=50, gt=0, description="Session window size")
    reflection_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="PARLEY_AGENT_")


class ShellConfig(BaseSettings):
    """Shell tool configuration."""

    enabled: bool = True
    timeout: int = Field(default=30, gt=0, description="Default command timeout in seconds")
    max_timeout: int = Field(default=300, gt=0)
    blocked_commands: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["reboot", "shutdown", "init 0", "mkfs"],
        description="Commands that are always blocked",
    )
    writable_dirs: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["data/workspace", "/tmp"],
        description="Directories a command may run in",
    )

    @field_validator("blocked_commands", "writable_dirs", mode="before")
    @classmethod
    def _parse_lists(cls, value: Any) -> list[str]:
        return _parse_str_list(value)

    model_config = SettingsConfigDict(env_prefix="PARLEY_SHELL_")


class QueueConfig(BaseSettings):
    """Async dispatch via arq (Redis)."""

    enabled: bool = False
    redis_url: str = Field(default="redis://localhost:6379/0")
    queue_name: str = Field(default="parley:messages")
    job_timeout_s: int = Field(default=600, gt=0)
    max_jobs: int = Field(default=4, gt=0)
    queued_channels: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["feishu"])

    @field_validator("queued_channels", mode="before")
    @classmethod
    def _parse_queued_channels(cls, value: Any) -> list[str]:
        return [item.lower() for item in _parse_str_list(value)]

    model_config = SettingsConfigDict(env_prefix="PARLEY_QUEUE_")


class FeishuChannelConfig(BaseSettings):
    """Feishu/Lark channel configuration."""

    enabled: bool = False
    app_id: str = ""
    app_secret: str = ""
    base_url: str = "https://open.feishu.cn/open-apis"
    timeout_s: float = Field(default=15.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="PARLEY_FEISHU_")


class WebhookChannelConfig(BaseSettings):
    """Generic outbound webhook channel."""

    url: str = ""
    timeout_s: int = Field(default=10, ge=1, le=120)

    model_config = SettingsConfigDict(env_prefix="PARLEY_WEBHOOK_")


class ChannelsConfig(BaseModel):
    """Top-level channels configuration."""

    feishu: FeishuChannelConfig = Field(default_factory=FeishuChannelConfig)
    webhook: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)


class AuditConfig(BaseSettings):
    """JSONL audit trail."""

    enabled: bool = True
    dir: str = Field(default="data/audit")

    model_config = SettingsConfigDict(env_prefix="PARLEY_AUDIT_")


class ParleyConfig(BaseSettings):
    """Root Parley configuration."""

    # Server
    host: str = Field(default="127.0.0.1", description="Server bind host")
    port: int = Field(default=18789, description="Server bind port")

    # Auth
    api_key: str = Field(default="", description="API key for authentication. Empty = no auth")

    # Paths
    data_dir: str = Field(default="data")
    plugins_dir: str = Field(default="data/plugins")
    workspace_dir: str = Field(default="data/workspace")

    # Sub-configs
    agent: AgentConfig = Field(default_factory=AgentConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        env_nested_delimiter="__",
    )

    @property
    def sessions_db_path(self) -> Path:
        return Path(self.data_dir) / "parley.db"

    @classmethod
    def load(cls) -> ParleyConfig:
        """Load config from YAML + env vars (env takes precedence)."""
        yaml_cfg = _load_yaml_config()

        agent_data = yaml_cfg.pop("agent", {})
        providers_data = yaml_cfg.pop("providers", {})
        shell_data = yaml_cfg.pop("shell", {})
        queue_data = yaml_cfg.pop("queue", {})
        channels_data = yaml_cfg.pop("channels", {})
        audit_data = yaml_cfg.pop("audit", {})

        # Only pass YAML sub-configs if they have data;
        # otherwise let pydantic-settings pick up env vars
        kwargs: dict[str, Any] = {**yaml_cfg}
        if agent_data:
            kwargs["agent"] = AgentConfig(**agent_data)
        if providers_data:
            kwargs["providers"] = ProvidersConfig(
                openai=OpenAIProviderConfig(**providers_data.get("openai", {})),
                anthropic=AnthropicProviderConfig(**providers_data.get("anthropic", {})),
                responses=ResponsesProviderConfig(**providers_data.get("responses", {})),
            )
        if shell_data:
            kwargs["shell"] = ShellConfig(**shell_data)
        if queue_data:
            kwargs["queue"] = QueueConfig(**queue_data)
        if channels_data:
            kwargs["channels"] = ChannelsConfig(
                feishu=FeishuChannelConfig(**channels_data.get("feishu", {})),
                webhook=WebhookChannelConfig(**channels_data.get("webhook", {})),
            )
        if audit_data:
            kwargs["audit"] = AuditConfig(**audit_data)

        return cls(**kwargs)


# Singleton
_config: ParleyConfig | None = None


def get_config() -> ParleyConfig:
    """Get or create the global config."""
    global _config
    if _config is None:
        _config = ParleyConfig.load()
    return _config
