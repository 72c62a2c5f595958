from __future__ import annotations

import os
from types import SimpleNamespace

import pytest

import courier.providers.litellm_provider as lp
from courier.errors import ProviderError
from courier.models import Decision, ModelTier
from courier.providers.litellm_provider import LiteLLMProvider, is_transient
from courier.providers.registry import find_by_model, normalize_model_name


class MockProviderError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _mock_completion_response(content) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


def test_normalize_model_name_prefixes() -> None:
    assert normalize_model_name("gpt-4o-mini") == "openai/gpt-4o-mini"
    assert normalize_model_name("claude-sonnet-4-20250514") == "anthropic/claude-sonnet-4-20250514"
    assert normalize_model_name("openrouter/meta/llama") == "openrouter/meta/llama"
    assert normalize_model_name("mystery-model") == "mystery-model"


def test_find_by_model_skips_gateways() -> None:
    assert find_by_model("gpt-4o").name == "openai"
    assert find_by_model("openrouter/unknown") is None


def test_provider_seeds_known_provider_env_keys(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    LiteLLMProvider(
        default_model="anthropic/claude-sonnet-4-20250514",
        provider_api_keys={"openai": "oa-test", "anthropic": "ant-test"},
    )

    assert os.environ.get("OPENAI_API_KEY") == "oa-test"
    assert os.environ.get("ANTHROPIC_API_KEY") == "ant-test"


def test_tier_models_select_candidates() -> None:
    provider = LiteLLMProvider(
        default_model="openai/gpt-4o-mini",
        tier_models={"light": "openai/gpt-4.1-nano", "heavy": "openai/gpt-4o"},
        fallback_max_attempts=3,
    )
    assert provider.model_for_tier(ModelTier.LIGHT) == "openai/gpt-4.1-nano"
    assert provider.model_for_tier(ModelTier.MEDIUM) == "openai/gpt-4o-mini"
    assert provider._build_model_candidates(ModelTier.HEAVY) == ["openai/gpt-4o", "openai/gpt-4o-mini"]


@pytest.mark.asyncio
async def test_complete_retries_on_transient_error_and_uses_fallback(monkeypatch) -> None:
    calls: list[str] = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs["model"])
        if len(calls) == 1:
            raise MockProviderError("rate limit", status_code=429)
        return _mock_completion_response("fallback-ok")

    monkeypatch.setattr(lp, "acompletion", fake_acompletion)

    provider = LiteLLMProvider(
        default_model="gpt-4.1-mini",
        fallback_models=["gpt-4o-mini"],
        fallback_max_attempts=2,
    )
    response = await provider.complete("hi")

    assert response.content == "fallback-ok"
    assert calls == ["openai/gpt-4.1-mini", "openai/gpt-4o-mini"]


@pytest.mark.asyncio
async def test_non_retryable_error_raises_provider_error(monkeypatch) -> None:
    calls: list[str] = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs["model"])
        raise MockProviderError("invalid api key", status_code=401)

    monkeypatch.setattr(lp, "acompletion", fake_acompletion)

    provider = LiteLLMProvider(default_model="gpt-4.1-mini", fallback_models=["gpt-4o-mini"])
    with pytest.raises(ProviderError):
        await provider.complete("hi")
    assert calls == ["openai/gpt-4.1-mini"]


@pytest.mark.asyncio
async def test_generate_strips_and_coerces_list_content(monkeypatch) -> None:
    async def fake_acompletion(**kwargs):
        return _mock_completion_response([{"type": "text", "text": "  part one"}, " part two  "])

    monkeypatch.setattr(lp, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(default_model="openai/gpt-4o-mini")
    assert await provider.generate("hi") == "part one part two"


@pytest.mark.asyncio
async def test_classify_maps_text_to_decision(monkeypatch) -> None:
    seen: list[str] = []

    async def fake_acompletion(**kwargs):
        seen.append(kwargs["model"])
        return _mock_completion_response("After reading the thread: [RESPOND]")

    monkeypatch.setattr(lp, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(default_model="openai/gpt-4o-mini", tier_models={"light": "openai/gpt-4.1-nano"})
    assert await provider.classify("should I?") == Decision.RESPOND
    assert seen == ["openai/gpt-4.1-nano"]


@pytest.mark.asyncio
async def test_empty_choices_yield_empty_text(monkeypatch) -> None:
    async def fake_acompletion(**kwargs):
        return SimpleNamespace(choices=[], usage=None)

    monkeypatch.setattr(lp, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(default_model="openai/gpt-4o-mini")
    assert await provider.generate("hi") == ""


@pytest.mark.parametrize(
    "err,expected",
    [
        (MockProviderError("slow down", status_code=429), True),
        (MockProviderError("upstream", status_code=503), True),
        (MockProviderError("request timed out"), True),
        (MockProviderError("invalid api key", status_code=500), False),
        (MockProviderError("nope", status_code=400), False),
        (ValueError("something odd"), False),
    ],
)
def test_is_transient(err, expected) -> None:
    assert is_transient(err) is expected


def test_deepseek_models_get_litellm_prefix() -> None:
    provider = LiteLLMProvider(default_model="deepseek-chat", fallback_max_attempts=1)
    assert provider._build_model_candidates(ModelTier.MEDIUM) == ["deepseek/deepseek-chat"]
