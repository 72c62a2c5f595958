"""Known generation backends: how to recognize their models and where their keys live."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    keywords: tuple[str, ...]
    env_key: str
    # Bare model names starting with one of these belong to this provider.
    bare_prefixes: tuple[str, ...] = ()
    litellm_prefix: str = ""
    is_gateway: bool = False
    default_api_base: str = ""

    def litellm_model(self, model: str) -> str:
        """Model string in the form litellm routes on."""
        if not self.litellm_prefix or model.startswith(f"{self.litellm_prefix}/"):
            return model
        return f"{self.litellm_prefix}/{model}"


PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        name="openrouter",
        keywords=("openrouter",),
        env_key="OPENROUTER_API_KEY",
        is_gateway=True,
        default_api_base="https://openrouter.ai/api/v1",
    ),
    ProviderSpec("anthropic", ("anthropic", "claude"), "ANTHROPIC_API_KEY", bare_prefixes=("claude-",)),
    ProviderSpec("openai", ("openai", "gpt"), "OPENAI_API_KEY", bare_prefixes=("gpt-", "o1", "o3", "o4")),
    ProviderSpec("deepseek", ("deepseek",), "DEEPSEEK_API_KEY", bare_prefixes=("deepseek-",), litellm_prefix="deepseek"),
    ProviderSpec("gemini", ("gemini",), "GEMINI_API_KEY", bare_prefixes=("gemini-",), litellm_prefix="gemini"),
)


def normalize_model_name(model: str) -> str:
    """Qualify a bare model name as ``provider/model`` when its family is recognizable."""
    name = model.strip()
    if "/" in name:
        return name
    lowered = name.lower()
    owner = next((p for p in PROVIDERS if p.bare_prefixes and lowered.startswith(p.bare_prefixes)), None)
    return f"{owner.name}/{name}" if owner and name else name


def find_by_model(model: str) -> ProviderSpec | None:
    """Direct provider serving ``model``; gateways never match."""
    lowered = normalize_model_name(model).lower()
    return next(
        (p for p in PROVIDERS if not p.is_gateway and any(kw in lowered for kw in p.keywords)),
        None,
    )


def find_by_name(name: str) -> ProviderSpec | None:
    return next((p for p in PROVIDERS if p.name == name), None)
