"""Base channel interface for messaging surfaces."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from loguru import logger

from courier.models import InboundMessage, SentMessage

MessageCallback = Callable[[InboundMessage], Awaitable[None]]


class BaseChannel(ABC):
    """Abstract base class for channel clients."""

    name: str = "base"
    max_message_length: int = 4096

    def __init__(self, config: Any, on_message: MessageCallback | None = None):
        self.config = config
        self.on_message = on_message
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def send_message(self, chat_id: str, text: str, reply_to: str | None = None) -> SentMessage:
        """Deliver ``text``. Raises DeliveryError on failure."""

    async def resolve_attachment_url(self, attachment: str) -> str:
        raise NotImplementedError(f"{self.name} does not serve attachments")

    def is_allowed(self, sender_id: str) -> bool:
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        sender_str = str(sender_id)
        if sender_str in allow_list:
            return True
        return any(part and part in allow_list for part in sender_str.split("|"))

    async def _handle_message(self, msg: InboundMessage) -> None:
        if not self.is_allowed(msg.sender_id):
            logger.warning(f"Access denied for {msg.sender_id} on {self.name}")
            return
        if self.on_message is None:
            logger.debug(f"{self.name}: no message callback wired, dropping {msg.id}")
            return
        await self.on_message(msg)

    @property
    def is_running(self) -> bool:
        return self._running
