"""AI provider tests against pydantic-ai test models."""

import pytest
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import ModelResponse, TextPart
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.test import TestModel

from autoflow.config import ProviderKeys
from autoflow.providers import (
    AgentProvider,
    CompletionOptions,
    ProviderError,
    ProviderRegistry,
    QuotaExceededError,
    build_registry,
    is_quota_error,
)
from autoflow.providers.agent import MAX_TOKENS, MODEL_FACTORIES, TEXT_TEMPERATURE

SCHEMA = {
    "type": "object",
    "properties": {"summary": {"type": "string"}},
    "required": ["summary"],
}


@pytest.mark.asyncio
async def test_complete_with_schema_returns_structured_data():
    requested = []

    def factory(model_name):
        requested.append(model_name)
        return TestModel(custom_output_args={"summary": "two lines"})

    provider = AgentProvider("groq", factory)
    result = await provider.complete_with_schema("Summarize this", SCHEMA)

    assert result.data == {"summary": "two lines"}
    assert result.model == "llama-3.3-70b-versatile"
    assert requested == ["llama-3.3-70b-versatile"]
    assert result.tokens_used > 0
    assert result.tokens_used == result.prompt_tokens + result.completion_tokens


@pytest.mark.asyncio
async def test_complete_returns_text_and_honours_model_option():
    provider = AgentProvider(
        "openai", lambda name: TestModel(custom_output_text="hello"), default_model="x"
    )
    result = await provider.complete("Say hi", options=CompletionOptions(model="gpt-test"))

    assert result.content == "hello"
    assert result.model == "gpt-test"


@pytest.mark.asyncio
async def test_model_settings_defaults_and_overrides():
    seen = []

    def respond(messages, info: AgentInfo) -> ModelResponse:
        seen.append(info.model_settings)
        return ModelResponse(parts=[TextPart("ok")])

    provider = AgentProvider("openai", lambda name: FunctionModel(respond))
    await provider.complete("a")
    await provider.complete("b", options=CompletionOptions(temperature=0.1, max_tokens=50))

    assert seen[0]["temperature"] == TEXT_TEMPERATURE
    assert seen[0]["max_tokens"] == MAX_TOKENS
    assert seen[1]["temperature"] == 0.1
    assert seen[1]["max_tokens"] == 50


@pytest.mark.asyncio
async def test_rate_limited_call_raises_quota_error():
    def respond(messages, info):
        raise ModelHTTPError(status_code=429, model_name="m", body={"error": "quota"})

    provider = AgentProvider("gemini", lambda name: FunctionModel(respond))
    with pytest.raises(QuotaExceededError):
        await provider.complete_with_schema("x", SCHEMA)


@pytest.mark.asyncio
async def test_other_http_errors_propagate():
    def respond(messages, info):
        raise ModelHTTPError(status_code=500, model_name="m", body=None)

    provider = AgentProvider("gemini", lambda name: FunctionModel(respond))
    with pytest.raises(ModelHTTPError):
        await provider.complete("x")


def test_is_quota_error():
    assert is_quota_error(QuotaExceededError("limit"))
    assert is_quota_error(RuntimeError("Error 429 from upstream"))
    assert is_quota_error(RuntimeError("You exceeded your current QUOTA"))
    assert is_quota_error(RuntimeError("Rate limit reached"))
    assert not is_quota_error(RuntimeError("connection reset"))


class _Named:
    def __init__(self, name):
        self.name = name


def test_registry_default_and_lookup():
    registry = ProviderRegistry()
    with pytest.raises(ProviderError, match="No AI providers configured"):
        registry.get()

    groq, openai = _Named("groq"), _Named("openai")
    registry.register(groq)
    registry.register(openai)
    assert registry.default_name == "groq"
    assert registry.get() is groq
    assert registry.get("openai") is openai
    assert registry.names == ["groq", "openai"]
    with pytest.raises(ProviderError, match="'gemini' not configured"):
        registry.get("gemini")

    registry.register(openai, set_default=True)
    assert registry.get() is openai


def test_build_registry_prefers_groq(monkeypatch):
    keys_seen = []

    def fake_factory(api_key):
        keys_seen.append(api_key)
        return lambda model_name: TestModel()

    for name in ("openai", "groq", "gemini"):
        monkeypatch.setitem(MODEL_FACTORIES, name, fake_factory)

    registry = build_registry(ProviderKeys(openai="sk-1", groq="gsk-2"))
    assert registry.default_name == "groq"
    assert sorted(registry.names) == ["groq", "openai"]
    assert sorted(keys_seen) == ["gsk-2", "sk-1"]

    assert build_registry(ProviderKeys()).default_name is None
