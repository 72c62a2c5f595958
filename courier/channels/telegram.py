"""Telegram channel using python-telegram-bot."""

from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger
from telegram import Message, ReplyParameters, Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from courier.channels.base import BaseChannel, MessageCallback
from courier.config import TelegramConfig
from courier.delivery.chunking import CHAT_MAX_MESSAGE_LENGTH
from courier.errors import DeliveryError
from courier.models import ChannelType, InboundMessage, SentMessage, now_ms


def _attachment_ref(message: Message) -> str | None:
    """File id of the largest photo, or of an image document."""
    if message.photo:
        return message.photo[-1].file_id
    document = message.document
    if document and (document.mime_type or "").startswith("image/"):
        return document.file_id
    return None


def to_inbound(message: Message) -> InboundMessage | None:
    user = message.from_user
    if user is None:
        return None
    reply = message.reply_to_message
    return InboundMessage(
        id=str(message.message_id),
        chat_id=str(message.chat_id),
        sender_id=str(user.id),
        sender_name=user.username or user.first_name or "Unknown User",
        text=message.text or message.caption or "",
        attachment=_attachment_ref(message),
        reply_to=str(reply.message_id) if reply else None,
        timestamp=int(message.date.timestamp() * 1000) if message.date else now_ms(),
        channel_type=ChannelType.DIRECT if message.chat.type == "private" else ChannelType.GROUP,
        sender_is_bot=bool(user.is_bot),
    )


class TelegramChannel(BaseChannel):
    """Telegram channel using long polling."""

    name = "telegram"
    max_message_length = CHAT_MAX_MESSAGE_LENGTH

    def __init__(
        self,
        config: TelegramConfig,
        on_message: MessageCallback | None = None,
        on_ready: Callable[[str], None] | None = None,
    ):
        super().__init__(config, on_message)
        self.config: TelegramConfig = config
        self.on_ready = on_ready
        self.username: str | None = None
        self._app: Application | None = None

    async def start(self) -> None:
        if not self.config.token:
            logger.error("Telegram bot token not configured")
            return

        self._running = True
        # Updates must run concurrently so the handler's busy guard can drop overlaps.
        builder = Application.builder().token(self.config.token).concurrent_updates(True)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()
        self._app.add_handler(
            MessageHandler(
                (filters.TEXT | filters.PHOTO | filters.Document.IMAGE) & ~filters.COMMAND,
                self._on_message,
            )
        )

        logger.info("Starting Telegram bot (polling)...")
        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        self.username = bot_info.username
        logger.info(f"Telegram bot @{self.username} connected")
        if self.on_ready and self.username:
            self.on_ready(self.username)

        await self._app.updater.start_polling(allowed_updates=["message"], drop_pending_updates=True)

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        self._running = False
        if self._app:
            logger.info("Stopping Telegram bot...")
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send_message(self, chat_id: str, text: str, reply_to: str | None = None) -> SentMessage:
        if not self._app:
            raise DeliveryError("Telegram application is not running")
        try:
            sent = await self._app.bot.send_message(
                chat_id=int(chat_id),
                text=text,
                reply_parameters=ReplyParameters(message_id=int(reply_to)) if reply_to else None,
            )
        except TelegramError as e:
            raise DeliveryError(f"Error sending Telegram message: {e}") from e
        return SentMessage(
            id=str(sent.message_id),
            chat_id=chat_id,
            text=sent.text or text,
            timestamp=int(sent.date.timestamp() * 1000) if sent.date else now_ms(),
        )

    async def resolve_attachment_url(self, attachment: str) -> str:
        if not self._app:
            raise DeliveryError("Telegram application is not running")
        file = await self._app.bot.get_file(attachment)
        return file.file_path

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_user:
            logger.debug("Telegram: skipping update without message or sender")
            return
        msg = to_inbound(update.message)
        if msg is None:
            return
        logger.debug(
            f"Telegram: received from {msg.sender_id} in chat {msg.chat_id} "
            f"(type={msg.channel_type.value}, has_text={bool(msg.text)}, has_attachment={bool(msg.attachment)})"
        )
        await self._handle_message(msg)
