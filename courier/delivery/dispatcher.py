"""Deliver validated text through a channel client."""

from __future__ import annotations

from typing import Callable

from loguru import logger

from courier.agent.sanitizer import is_placeholder, sanitize
from courier.channels.base import BaseChannel
from courier.delivery.chunking import chunk, truncate
from courier.models import SentMessage

Splitter = Callable[[str, int], list[str]]


def single_post(text: str, max_len: int) -> list[str]:
    """Splitter for feeds: one truncated segment."""
    return [truncate(text, max_len)] if text else []


class DeliveryDispatcher:
    """Sanitizes, splits and sends text to one channel.

    Only the first segment is sent, even when the text spans several.
    """

    def __init__(self, channel: BaseChannel, max_length: int | None = None, splitter: Splitter = chunk):
        self.channel = channel
        self.max_length = max_length or channel.max_message_length
        self.splitter = splitter

    async def send(self, chat_id: str, text: str, reply_to: str | None = None) -> list[SentMessage]:
        if is_placeholder(text):
            logger.debug(f"{self.channel.name}: skipping empty/placeholder reply")
            return []
        text = sanitize(text)
        if is_placeholder(text):
            logger.debug(f"{self.channel.name}: reply empty after cleanup, nothing to send")
            return []

        segments = self.splitter(text, self.max_length)
        if not segments:
            return []
        if len(segments) > 1:
            logger.warning(
                f"{self.channel.name}: reply spans {len(segments)} segments, sending the first only"
            )

        sent = await self.channel.send_message(chat_id, segments[0], reply_to=reply_to)
        logger.debug(f"{self.channel.name}: sent {len(sent.text)} chars to {chat_id} (id={sent.id})")
        return [sent]
