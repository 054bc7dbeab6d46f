"""Select the provider adapter once at process start."""

from __future__ import annotations

import structlog

from parley.config import ParleyConfig
from parley.llm.anthropic_provider import AnthropicProvider
from parley.llm.base import LLMProvider
from parley.llm.litellm_provider import LiteLLMProvider
from parley.llm.responses_provider import ResponsesProvider

logger = structlog.get_logger()


def build_provider(config: ParleyConfig) -> LLMProvider:
    """Build the configured default provider.

    A provider missing its credentials falls back to the LiteLLM adapter,
    which can still pick keys up from the usual vendor environment variables.
    """
    name = config.agent.default_provider
    providers = config.providers

    if name == "anthropic":
        if providers.anthropic.api_key:
            return AnthropicProvider(providers.anthropic)
        logger.warning("provider.fallback", requested="anthropic", reason="api_key not set")
    elif name == "responses":
        if providers.responses.base_url and providers.responses.model:
            return ResponsesProvider(providers.responses)
        logger.warning("provider.fallback", requested="responses", reason="base_url/model not set")

    return LiteLLMProvider(providers.openai)
