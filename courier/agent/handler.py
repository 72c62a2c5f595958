"""Reactive message handling: policy -> pipeline -> delivery."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Awaitable, Callable

from loguru import logger

from courier.agent.context import build_state, compose_context
from courier.agent.pipeline import ResponsePipeline
from courier.agent.policy import RespondPolicy
from courier.config import AgentConfig, TelegramConfig
from courier.delivery.dispatcher import DeliveryDispatcher
from courier.models import (
    ChannelType,
    Content,
    ConversationState,
    Decision,
    InboundMessage,
    MemoryRecord,
    ModelTier,
)
from courier.prompts.templates import MESSAGE_HANDLER_TEMPLATE
from courier.storage.db import Database
from courier.utils.ids import scoped_id, string_to_uuid

EvaluateCallback = Callable[[MemoryRecord, ConversationState, Decision], Awaitable[None]]


class MessageHandler:
    """Handles one inbound message at a time.

    A message that arrives while another is being processed is dropped, not
    queued. The guard is released on every exit path.
    """

    def __init__(
        self,
        db: Database,
        policy: RespondPolicy,
        pipeline: ResponsePipeline,
        dispatcher: DeliveryDispatcher,
        agent_config: AgentConfig,
        channel_config: TelegramConfig | None = None,
        image_service: Any = None,
        on_evaluated: EvaluateCallback | None = None,
        source: str = "telegram",
    ):
        self.db = db
        self.policy = policy
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.agent_config = agent_config
        self.channel_config = channel_config or TelegramConfig()
        self.image_service = image_service
        self.on_evaluated = on_evaluated
        self.source = source
        self.template = agent_config.resolve_template(
            f"{source}_message_handler", "message_handler", default=MESSAGE_HANDLER_TEMPLATE
        )
        self._busy = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    async def handle(self, message: InboundMessage | None) -> None:
        if self._busy.locked():
            logger.debug(f"Dropping message {getattr(message, 'id', '?')}: handler busy")
            return
        if message is None or not message.sender_id:
            return
        if self.channel_config.ignore_bot_messages and message.sender_is_bot:
            return
        if self.channel_config.ignore_direct_messages and message.channel_type == ChannelType.DIRECT:
            return

        async with self._busy:
            try:
                await self._process(message)
            except Exception as e:
                logger.error(f"Error handling message {message.id}: {e}")

    async def _describe_attachment(self, attachment: str) -> str:
        try:
            url = await self.dispatcher.channel.resolve_attachment_url(attachment)
            description = await self.image_service.describe(url)
            return description.as_text()
        except Exception as e:
            logger.error(f"Error processing image: {e}")
            return ""

    async def _process(self, message: InboundMessage) -> None:
        agent_id = self.agent_config.agent_id
        user_id = string_to_uuid(message.sender_id)
        room_id = scoped_id(message.chat_id, agent_id)
        await self.db.ensure_connection(user_id, room_id, message.sender_name, self.source)

        text = message.text
        if message.attachment and self.channel_config.describe_images and self.image_service:
            description = await self._describe_attachment(message.attachment)
            text = f"{text} {description}".strip() if description else text
        if not text:
            return

        memory = MemoryRecord(
            id=scoped_id(f"{message.chat_id}:{message.id}", agent_id),
            agent_id=agent_id,
            user_id=user_id,
            room_id=room_id,
            content=Content(
                text=text,
                source=self.source,
                in_reply_to=scoped_id(f"{message.chat_id}:{message.reply_to}", agent_id) if message.reply_to else None,
            ),
            created_at=message.timestamp,
        )
        await self.db.create_memory(memory)

        state = await build_state(self.db, self.agent_config, room_id, sender_name=message.sender_name)
        if text != message.text:
            message = replace(message, text=text)
        decision = await self.policy.decide(message, state)
        logger.info(f"{self.source}: {decision.value} to message {message.id} from {message.sender_name}")

        if decision == Decision.RESPOND:
            await self._respond(message, memory, state)

        if self.on_evaluated:
            await self.on_evaluated(memory, state, decision)

    async def _respond(self, message: InboundMessage, memory: MemoryRecord, state: ConversationState) -> None:
        context = compose_context(state, self.template)
        response = await self.pipeline.generate(memory, state, context, ModelTier.MEDIUM)
        if not response or not response.text:
            return

        sent_messages = await self.dispatcher.send(message.chat_id, response.text, reply_to=message.id)
        for sent in sent_messages:
            await self.db.create_memory(
                MemoryRecord(
                    id=scoped_id(f"{sent.chat_id}:{sent.id}", self.agent_config.agent_id),
                    agent_id=self.agent_config.agent_id,
                    user_id=self.agent_config.agent_id,
                    room_id=memory.room_id,
                    content=Content(
                        text=sent.text,
                        source=self.source,
                        action=response.action,
                        in_reply_to=memory.id,
                    ),
                    created_at=sent.timestamp,
                )
            )
