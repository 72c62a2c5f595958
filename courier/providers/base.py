"""Generation service interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from courier.models import Decision, ModelTier


@dataclass
class LLMResponse:
    content: str | None
    model: str = ""
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Narrow request/response contract over a language model backend."""

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def complete(self, prompt: str, tier: ModelTier = ModelTier.MEDIUM) -> LLMResponse:
        """Generate text for ``prompt``. Raises on upstream failure."""

    async def generate(self, prompt: str, tier: ModelTier = ModelTier.MEDIUM) -> str:
        response = await self.complete(prompt, tier)
        return (response.content or "").strip()

    async def classify(self, prompt: str, tier: ModelTier = ModelTier.LIGHT) -> Decision:
        """Render ``prompt`` through the model and map the answer to a Decision."""
        return Decision.parse(await self.generate(prompt, tier))
