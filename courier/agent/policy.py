"""Decide whether the agent should respond to an inbound chat message."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from courier.agent.context import compose_context
from courier.config import AgentConfig
from courier.models import ChannelType, ConversationState, Decision, InboundMessage, ModelTier
from courier.prompts.templates import SHOULD_RESPOND_TEMPLATE


class Classifier(Protocol):
    async def classify(self, prompt: str, tier: ModelTier = ModelTier.LIGHT) -> Decision: ...


class RespondPolicy:
    """Deterministic pre-filters first, then the model-backed classifier.

    1. explicit ``@handle`` mention -> RESPOND
    2. private one-to-one chat -> RESPOND
    3. attachment with no text or caption -> IGNORE
    4. any other text -> classifier (failure or unknown output -> IGNORE)
    5. nothing usable -> IGNORE
    """

    def __init__(self, classifier: Classifier, agent_config: AgentConfig, template_names: tuple[str, ...] = ()):
        self.classifier = classifier
        self.agent_config = agent_config
        self.template = agent_config.resolve_template(
            *template_names, "should_respond", default=SHOULD_RESPOND_TEMPLATE
        )

    @property
    def handle(self) -> str:
        return self.agent_config.handle.lstrip("@")

    async def decide(self, message: InboundMessage, state: ConversationState) -> Decision:
        text = message.text.strip()

        if self.handle and message.mentions(self.handle):
            return Decision.RESPOND

        if message.channel_type == ChannelType.DIRECT:
            return Decision.RESPOND

        if message.attachment and not text:
            return Decision.IGNORE

        if text:
            return await self._classify(state)

        return Decision.IGNORE

    async def _classify(self, state: ConversationState) -> Decision:
        prompt = compose_context(state, self.template)
        try:
            decision = await self.classifier.classify(prompt, ModelTier.LIGHT)
        except Exception as e:
            logger.error(f"Respond classifier failed, ignoring message: {e}")
            return Decision.IGNORE
        if not isinstance(decision, Decision):
            decision = Decision.parse(str(decision))
        logger.debug(f"Respond classifier decided {decision.value} for room {state.room_id}")
        return decision
