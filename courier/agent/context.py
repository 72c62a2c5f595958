"""Conversation state assembly and prompt rendering."""

from __future__ import annotations

import random
import re
from typing import Any

from courier.config import AgentConfig
from courier.models import ConversationState, Turn
from courier.storage.db import Database

RECENT_MESSAGE_COUNT = 20
CONVERSATION_WINDOW = 5
_MAX_BIO_LINES = 3
_MAX_KNOWLEDGE_LINES = 5
_MAX_POST_EXAMPLES = 5

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def compose_context(state: ConversationState, template: str) -> str:
    """Fill ``{{name}}`` placeholders from state variables. Unknown names become empty."""
    def substitute(match: re.Match) -> str:
        value = state.variables.get(match.group(1), "")
        if isinstance(value, (list, tuple)):
            return "\n".join(str(v) for v in value)
        return str(value)

    return _PLACEHOLDER_RE.sub(substitute, template)


def _sample(items: list[str], k: int, rng: random.Random) -> list[str]:
    if len(items) <= k:
        return list(items)
    return rng.sample(items, k)


def character_variables(agent: AgentConfig, rng: random.Random | None = None) -> dict[str, Any]:
    """Template variables derived from the character definition."""
    rng = rng or random.Random()
    examples = _sample(agent.post_examples, _MAX_POST_EXAMPLES, rng)
    knowledge = _sample(agent.knowledge, _MAX_KNOWLEDGE_LINES, rng)
    return {
        "agentName": agent.name,
        "handle": agent.handle,
        "bio": " ".join(_sample(agent.bio, _MAX_BIO_LINES, rng)),
        "lore": "\n".join(agent.lore),
        "topics": ", ".join(agent.topics),
        "topic": rng.choice(agent.topics) if agent.topics else "",
        "adjective": rng.choice(agent.adjectives) if agent.adjectives else "",
        "knowledge": ("# Knowledge\n" + "\n".join(f"- {k}" for k in knowledge)) if knowledge else "",
        "characterPostExamples": (
            f"# Example posts for {agent.name}\n" + "\n".join(examples) if examples else ""
        ),
        "postDirections": (
            f"# Post directions for {agent.name}\n" + "\n".join(agent.post_directions)
            if agent.post_directions
            else ""
        ),
    }


async def build_state(
    db: Database,
    agent: AgentConfig,
    room_id: str,
    sender_name: str = "",
    extra: dict[str, Any] | None = None,
    rng: random.Random | None = None,
) -> ConversationState:
    """Rebuild the rolling context for a room from stored memories."""
    memories = await db.get_memories(room_id, count=RECENT_MESSAGE_COUNT)
    names = {p["user_id"]: p["user_name"] for p in await db.get_participants(room_id)}
    agent_id = agent.agent_id
    names[agent_id] = agent.name

    lines = []
    turns = []
    for memory in memories:
        text = memory.content.text
        if not text:
            continue
        author = names.get(memory.user_id) or "Unknown User"
        lines.append(f"{author}: {text}")
        turns.append(Turn(role="agent" if memory.user_id == agent_id else "other", text=text))

    variables = character_variables(agent, rng)
    variables.update(
        {
            "senderName": sender_name,
            "recentMessages": "\n".join(lines),
            "formattedConversation": "\n".join(lines[-CONVERSATION_WINDOW:]),
        }
    )
    if extra:
        variables.update(extra)

    return ConversationState(
        room_id=room_id,
        turns=turns[-CONVERSATION_WINDOW:],
        variables=variables,
        recent_memories=memories,
    )
