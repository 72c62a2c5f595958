"""Public feed client: posts status updates over the platform's HTTP API."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from courier.channels.base import BaseChannel
from courier.config import FeedConfig
from courier.delivery.chunking import FEED_MAX_POST_LENGTH
from courier.errors import DeliveryError
from courier.models import SentMessage, now_ms


class FeedChannel(BaseChannel):
    """Posts to a public microblogging feed. Sends are serialized."""

    name = "feed"
    max_message_length = FEED_MAX_POST_LENGTH

    def __init__(self, config: FeedConfig, client: httpx.AsyncClient | None = None):
        super().__init__(config)
        self.config: FeedConfig = config
        self._client = client
        self._owns_client = client is None
        self._send_lock = asyncio.Lock()

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base.rstrip("/"),
                headers={"Authorization": f"Bearer {self.config.bearer_token}"},
                timeout=30.0,
            )
            self._owns_client = True
        self._running = True
        logger.info(f"Feed channel ready for @{self.config.username} ({self.config.platform})")

    async def stop(self) -> None:
        self._running = False
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def status_url(self, post_id: str) -> str:
        return f"https://twitter.com/{self.config.username}/status/{post_id}"

    async def send_message(self, chat_id: str, text: str, reply_to: str | None = None) -> SentMessage:
        if self._client is None:
            await self.start()
        payload: dict[str, Any] = {"text": text}
        if reply_to:
            payload["reply"] = {"in_reply_to_tweet_id": reply_to}

        async with self._send_lock:
            try:
                response = await self._client.post("/tweets", json=payload)
            except httpx.HTTPError as e:
                raise DeliveryError(f"Feed post failed: {e}") from e

        if response.status_code >= 400:
            raise DeliveryError(
                f"Feed post rejected ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json().get("data") or {}
        except ValueError:
            data = {}
        post_id = data.get("id")
        if not post_id:
            raise DeliveryError(f"Feed post failed; bad response: {response.text[:200]}")

        return SentMessage(
            id=str(post_id),
            chat_id=chat_id,
            text=data.get("text") or text,
            url=self.status_url(str(post_id)),
            timestamp=now_ms(),
        )
