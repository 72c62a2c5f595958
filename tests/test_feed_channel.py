import json

import httpx
import pytest

from courier.channels.feed import FeedChannel
from courier.config import FeedConfig
from courier.errors import DeliveryError


def _channel(handler) -> tuple[FeedChannel, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(base_url="https://api.example.test/2", transport=httpx.MockTransport(record))
    return FeedChannel(FeedConfig(username="courier"), client=client), requests


@pytest.mark.asyncio
async def test_send_posts_text_and_returns_status_url() -> None:
    channel, requests = _channel(lambda r: httpx.Response(201, json={"data": {"id": "555", "text": "hello feed"}}))

    sent = await channel.send_message("courier", "hello feed")

    assert sent.id == "555"
    assert sent.url == "https://twitter.com/courier/status/555"
    assert json.loads(requests[0].content) == {"text": "hello feed"}
    assert requests[0].url.path == "/2/tweets"


@pytest.mark.asyncio
async def test_reply_is_threaded() -> None:
    channel, requests = _channel(lambda r: httpx.Response(201, json={"data": {"id": "9"}}))
    await channel.send_message("courier", "reply", reply_to="8")
    assert json.loads(requests[0].content)["reply"] == {"in_reply_to_tweet_id": "8"}


@pytest.mark.asyncio
async def test_http_error_raises_delivery_error() -> None:
    channel, _ = _channel(lambda r: httpx.Response(429, text="slow down"))
    with pytest.raises(DeliveryError) as exc:
        await channel.send_message("courier", "hi")
    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_response_without_id_raises() -> None:
    channel, _ = _channel(lambda r: httpx.Response(200, json={"errors": ["nope"]}))
    with pytest.raises(DeliveryError):
        await channel.send_message("courier", "hi")


@pytest.mark.asyncio
async def test_transport_failure_raises_delivery_error() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    channel, _ = _channel(boom)
    with pytest.raises(DeliveryError):
        await channel.send_message("courier", "hi")


@pytest.mark.asyncio
async def test_stop_keeps_injected_client_open() -> None:
    channel, _ = _channel(lambda r: httpx.Response(201, json={"data": {"id": "1"}}))
    await channel.start()
    await channel.stop()
    assert not channel.is_running
    await channel.send_message("courier", "still works")
