"""Generation service backed by LiteLLM."""

import os
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from courier.errors import ProviderError
from courier.models import ModelTier
from courier.providers.base import LLMProvider, LLMResponse
from courier.providers.registry import find_by_model, find_by_name, normalize_model_name

# Checked before the status code: these never succeed on another model.
_FATAL_HINTS = (
    "invalid api key",
    "authentication",
    "unauthorized",
    "forbidden",
    "invalid request",
    "bad request",
    "context length",
    "unsupported model",
    "not found",
)
_TRANSIENT_HINTS = (
    "timeout",
    "timed out",
    "rate limit",
    "too many requests",
    "temporar",
    "overloaded",
    "connection reset",
    "service unavailable",
    "internal server error",
)
_TRANSIENT_STATUSES = {408, 409, 425, 429}


def _status_of(err: Exception) -> int | None:
    raw = getattr(err, "status_code", None) or getattr(err, "status", None)
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def is_transient(err: Exception) -> bool:
    """Whether trying the next candidate model could help."""
    text = str(err).lower()
    if any(hint in text for hint in _FATAL_HINTS):
        return False
    status = _status_of(err)
    if status is not None:
        return status in _TRANSIENT_STATUSES or status >= 500
    return any(hint in text for hint in _TRANSIENT_HINTS)


class LiteLLMProvider(LLMProvider):
    """One prompt in, one completion out.

    Each tier maps to a model. A transient failure moves on to the next
    candidate (configured fallbacks, then the default model), up to
    ``fallback_max_attempts`` models in total.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "openai/gpt-4o-mini",
        tier_models: dict[str, str] | None = None,
        provider_name: str | None = None,
        fallback_models: list[str] | None = None,
        fallback_max_attempts: int = 2,
        provider_api_keys: dict[str, str] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ):
        super().__init__(api_key, api_base)
        self.default_model = normalize_model_name(default_model)
        self.tier_models = {tier: normalize_model_name(m) for tier, m in (tier_models or {}).items() if m}
        self.fallback_models = [normalize_model_name(m) for m in fallback_models or []]
        self.fallback_max_attempts = max(1, fallback_max_attempts)
        self.temperature = temperature
        self.max_tokens = max_tokens

        keys = dict(provider_api_keys or {})
        if api_key:
            owner = (find_by_name(provider_name) if provider_name else None) or find_by_model(self.default_model)
            if owner:
                keys.setdefault(owner.name, api_key)
        self._export_keys(keys)

        litellm.suppress_debug_info = True
        litellm.drop_params = True

    @staticmethod
    def _export_keys(keys: dict[str, str]) -> None:
        # litellm reads provider credentials from the environment.
        for name, key in keys.items():
            spec = find_by_name(name)
            if spec and key:
                os.environ.setdefault(spec.env_key, key)

    @staticmethod
    def _litellm_model(model: str) -> str:
        spec = find_by_model(model)
        return spec.litellm_model(model) if spec else model

    def model_for_tier(self, tier: ModelTier) -> str:
        return self.tier_models.get(tier.value) or self.default_model

    def _build_model_candidates(self, tier: ModelTier) -> list[str]:
        ordered = [self.model_for_tier(tier), *self.fallback_models, self.default_model]
        unique = list(dict.fromkeys(self._litellm_model(m) for m in ordered))
        return unique[: self.fallback_max_attempts]

    async def complete(self, prompt: str, tier: ModelTier = ModelTier.MEDIUM) -> LLMResponse:
        candidates = self._build_model_candidates(tier)
        request: dict[str, Any] = {
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.api_key:
            request["api_key"] = self.api_key
        if self.api_base:
            request["api_base"] = self.api_base

        error: Exception | None = None
        for attempt, model in enumerate(candidates, start=1):
            try:
                response = await acompletion(model=model, **request)
            except Exception as e:
                error = e
                if attempt == len(candidates) or not is_transient(e):
                    break
                logger.warning(f"{tier.value} call to '{model}' failed ({e}); trying next model")
                continue
            if attempt > 1:
                logger.warning(f"Fell back to '{model}' for {tier.value} tier")
            return _to_response(response, model)

        raise ProviderError(f"Generation failed on {tier.value} tier: {error or 'no candidate models'}")


def _to_response(response: Any, model: str) -> LLMResponse:
    usage_obj = getattr(response, "usage", None)
    usage = {}
    if usage_obj:
        usage = {
            name: getattr(usage_obj, name, 0) or 0
            for name in ("prompt_tokens", "completion_tokens", "total_tokens")
        }

    choices = getattr(response, "choices", None) or []
    if not choices:
        logger.warning(f"'{model}' returned no choices")
        return LLMResponse(content="", model=model, usage=usage)

    first = choices[0]
    message = getattr(first, "message", None)
    raw = getattr(message, "content", None) if message is not None else getattr(first, "text", None)
    return LLMResponse(
        content=_coerce_content(raw),
        model=model,
        finish_reason=getattr(first, "finish_reason", None) or "stop",
        usage=usage,
    )


def _coerce_content(content: Any) -> str | None:
    """Flatten string, part-list or dict payloads into text."""
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, dict):
        text = content.get("text")
        return text if isinstance(text, str) else str(content)
    if isinstance(content, list):
        pieces = [
            part if isinstance(part, str) else part.get("text", "")
            for part in content
            if isinstance(part, str) or (isinstance(part, dict) and isinstance(part.get("text"), str))
        ]
        return "".join(pieces).strip() or None
    return str(content)
