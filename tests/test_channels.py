from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from courier.channels.base import BaseChannel
from courier.channels.telegram import to_inbound
from courier.config import TelegramConfig
from courier.models import ChannelType, InboundMessage, SentMessage
from courier.providers.vision import ImageDescription, parse_description


def _tg_message(text="hi", chat_type="group", photo=None, document=None, caption=None, reply=None, is_bot=False):
    return SimpleNamespace(
        message_id=12,
        chat_id=-100,
        chat=SimpleNamespace(type=chat_type),
        from_user=SimpleNamespace(id=42, username="alice", first_name="Alice", is_bot=is_bot),
        text=text,
        caption=caption,
        photo=photo or [],
        document=document,
        reply_to_message=reply,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_to_inbound_maps_group_text() -> None:
    msg = to_inbound(_tg_message(reply=SimpleNamespace(message_id=11)))
    assert msg.id == "12"
    assert msg.chat_id == "-100"
    assert msg.sender_name == "alice"
    assert msg.reply_to == "11"
    assert msg.channel_type == ChannelType.GROUP
    assert msg.timestamp == 1704067200000


def test_to_inbound_private_chat_is_direct() -> None:
    assert to_inbound(_tg_message(chat_type="private")).channel_type == ChannelType.DIRECT


def test_to_inbound_uses_largest_photo_and_caption() -> None:
    photos = [SimpleNamespace(file_id="small"), SimpleNamespace(file_id="large")]
    msg = to_inbound(_tg_message(text=None, photo=photos, caption="look"))
    assert msg.attachment == "large"
    assert msg.text == "look"


def test_to_inbound_ignores_non_image_documents() -> None:
    doc = SimpleNamespace(file_id="doc", mime_type="application/pdf")
    assert to_inbound(_tg_message(document=doc)).attachment is None


def test_to_inbound_without_sender_is_none() -> None:
    message = _tg_message()
    message.from_user = None
    assert to_inbound(message) is None


class CollectingChannel(BaseChannel):
    name = "collect"

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def send_message(self, chat_id: str, text: str, reply_to: str | None = None) -> SentMessage:
        return SentMessage(id="1", chat_id=chat_id, text=text)


@pytest.mark.asyncio
async def test_allow_list_filters_senders() -> None:
    received = []

    async def collect(msg):
        received.append(msg.sender_id)

    channel = CollectingChannel(TelegramConfig(allow_from=["42"]), on_message=collect)
    await channel._handle_message(InboundMessage(id="1", chat_id="c", sender_id="42", sender_name="a"))
    await channel._handle_message(InboundMessage(id="2", chat_id="c", sender_id="7", sender_name="b"))
    assert received == ["42"]


@pytest.mark.asyncio
async def test_base_channel_has_no_attachments() -> None:
    with pytest.raises(NotImplementedError):
        await CollectingChannel(None).resolve_attachment_url("x")


def test_parse_description_json() -> None:
    desc = parse_description('```json\n{"title": "Cat", "description": "A cat on a mat."}\n```')
    assert desc == ImageDescription(title="Cat", description="A cat on a mat.")
    assert desc.as_text() == "[Image: Cat\nA cat on a mat.]"


def test_parse_description_free_text() -> None:
    desc = parse_description("Sunset\nOrange sky over water.")
    assert desc.title == "Sunset"
    assert desc.description == "Orange sky over water."
