"""Response generation: generate, sanitize, validate, audit."""

from __future__ import annotations

import json
import re

from loguru import logger

from courier.agent.sanitizer import sanitize, validate_response
from courier.config import AgentConfig, SanitizerConfig
from courier.models import Content, ConversationState, MemoryRecord, ModelTier
from courier.providers.base import LLMProvider
from courier.storage.db import Database

_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def parse_content(raw: str) -> Content:
    """Read a ``{"text", "action"}`` object if the model produced one, else plain text."""
    text = raw.strip()
    match = _JSON_BLOCK_RE.search(text)
    candidate = match.group(1) if match else text
    if candidate.startswith("{"):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("text"), str):
            action = data.get("action")
            return Content(text=data["text"], action=str(action) if action else None)
    return Content(text=text)


class ResponsePipeline:
    """Turns a rendered prompt into validated content, or None.

    Never raises: upstream failures, empty output and rejected output all
    resolve to None with a logged diagnostic. No retries happen here.
    """

    def __init__(
        self,
        provider: LLMProvider,
        db: Database,
        agent_config: AgentConfig,
        sanitizer_config: SanitizerConfig | None = None,
    ):
        self.provider = provider
        self.db = db
        self.agent_config = agent_config
        self.sanitizer_config = sanitizer_config or SanitizerConfig()

    async def recent_replies(self, room_id: str) -> list[str]:
        window = self.sanitizer_config.duplicate_window
        if not window:
            return []
        records = await self.db.get_memories(room_id, count=window, user_id=self.agent_config.agent_id)
        return [r.content.text for r in records]

    async def generate(
        self,
        trigger: MemoryRecord | None,
        state: ConversationState,
        context: str,
        tier: ModelTier = ModelTier.MEDIUM,
    ) -> Content | None:
        try:
            logger.debug(f"Generating response for room {state.room_id} ({tier.value} tier)")
            raw = await self.provider.generate(context, tier)
            if not raw:
                logger.error("No response generated")
                return None

            content = parse_content(raw)
            content.text = sanitize(content.text)
            cfg = self.sanitizer_config
            if not validate_response(
                content.text,
                await self.recent_replies(state.room_id),
                patterns=cfg.denylist,
                max_pattern_matches=cfg.max_pattern_matches,
                duplicate_window=cfg.duplicate_window,
            ):
                logger.error("Response validation failed")
                return None

            await self.db.log(
                body={
                    "message": _record_summary(trigger),
                    "context": context,
                    "response": content.to_dict(),
                },
                user_id=trigger.user_id if trigger else self.agent_config.agent_id,
                room_id=state.room_id,
                type="response",
            )
            return content
        except Exception as e:
            logger.error(f"Error generating response: {e}")
            return None


def _record_summary(record: MemoryRecord | None) -> dict | None:
    if record is None:
        return None
    return {
        "id": record.id,
        "user_id": record.user_id,
        "room_id": record.room_id,
        "content": record.content.to_dict(),
        "created_at": record.created_at,
    }
