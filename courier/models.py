"""Data types shared by channels, the response pipeline and the scheduler."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

EMBEDDING_DIMENSIONS = 384


class ChannelType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"
    PUBLIC = "public"


class ModelTier(str, Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class Decision(str, Enum):
    """Outcome of the respond/ignore/stop policy."""
    RESPOND = "RESPOND"
    IGNORE = "IGNORE"
    STOP = "STOP"

    @classmethod
    def parse(cls, raw: str | None) -> "Decision":
        """Map raw classifier text onto a decision. Unrecognized text is IGNORE."""
        if not raw:
            return cls.IGNORE
        text = raw.strip().upper()
        bracketed = re.findall(r"\[(RESPOND|IGNORE|STOP)\]", text)
        if bracketed:
            return cls(bracketed[-1])
        words = re.findall(r"\b(RESPOND|IGNORE|STOP)\b", text)
        if len(set(words)) == 1:
            return cls(words[0])
        return cls.IGNORE


def now_ms() -> int:
    return int(time.time() * 1000)


def zero_embedding() -> list[float]:
    return [0.0] * EMBEDDING_DIMENSIONS


@dataclass(frozen=True)
class InboundMessage:
    """A message received from a chat channel."""
    id: str
    chat_id: str
    sender_id: str
    sender_name: str
    text: str = ""
    attachment: str | None = None
    reply_to: str | None = None
    timestamp: int = field(default_factory=now_ms)
    channel_type: ChannelType = ChannelType.GROUP
    sender_is_bot: bool = False

    def mentions(self, handle: str) -> bool:
        handle = handle.lstrip("@")
        return bool(handle) and f"@{handle}" in self.text


@dataclass
class Content:
    """Generated or received content. ``text`` is the payload, the rest is metadata."""
    text: str = ""
    source: str | None = None
    url: str | None = None
    action: str | None = None
    in_reply_to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Content":
        known = {k: data[k] for k in ("text", "source", "url", "action", "in_reply_to") if k in data}
        return cls(**known)


@dataclass(frozen=True)
class MemoryRecord:
    id: str
    agent_id: str
    user_id: str
    room_id: str
    content: Content
    created_at: int = field(default_factory=now_ms)
    embedding: list[float] = field(default_factory=zero_embedding)


@dataclass(frozen=True)
class Turn:
    role: str  # "agent" or "other"
    text: str


@dataclass
class ConversationState:
    """Per-room rolling context used to render prompts."""
    room_id: str
    turns: list[Turn] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    recent_memories: list[MemoryRecord] = field(default_factory=list)

    def agent_replies(self, agent_id: str) -> list[str]:
        return [m.content.text for m in self.recent_memories if m.user_id == agent_id]


@dataclass(frozen=True)
class SentMessage:
    """Record of a message delivered by a channel client."""
    id: str
    chat_id: str
    text: str
    url: str | None = None
    timestamp: int = field(default_factory=now_ms)
