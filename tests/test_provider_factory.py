from parley.config import (
    AgentConfig,
    AnthropicProviderConfig,
    ParleyConfig,
    ProvidersConfig,
    ResponsesProviderConfig,
)
from parley.llm.anthropic_provider import AnthropicProvider
from parley.llm.factory import build_provider
from parley.llm.litellm_provider import LiteLLMProvider
from parley.llm.responses_provider import ResponsesProvider


def config_for(name: str, **providers) -> ParleyConfig:
    return ParleyConfig(
        agent=AgentConfig(default_provider=name),
        providers=ProvidersConfig(**providers),
    )


def test_default_is_litellm() -> None:
    assert isinstance(build_provider(config_for("openai")), LiteLLMProvider)


def test_anthropic_with_key() -> None:
    config = config_for("anthropic", anthropic=AnthropicProviderConfig(api_key="sk-ant-test"))

    provider = build_provider(config)

    assert isinstance(provider, AnthropicProvider)
    assert provider.name == "anthropic"


def test_anthropic_without_key_falls_back() -> None:
    config = config_for("anthropic", anthropic=AnthropicProviderConfig(api_key=""))

    assert isinstance(build_provider(config), LiteLLMProvider)


def test_responses_requires_base_url_and_model() -> None:
    missing = config_for("responses", responses=ResponsesProviderConfig(base_url="", model="m"))
    complete = config_for(
        "responses",
        responses=ResponsesProviderConfig(base_url="https://gw.example.com", model="m"),
    )

    assert isinstance(build_provider(missing), LiteLLMProvider)
    assert isinstance(build_provider(complete), ResponsesProvider)
