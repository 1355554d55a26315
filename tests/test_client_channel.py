import pytest

from voice_client.config.settings import ServerSettings
from voice_client.services.channel import ChannelClosedError, RelayChannel
from voice_client.services.schemas import (
    AiError,
    AiResponse,
    AudioMessage,
    TextMessage,
    parse_server_event,
)


def _bound_channel():
    channel = RelayChannel(ServerSettings())
    replies, failures, disconnects = [], [], []
    channel.bind(
        on_reply=replies.append,
        on_failure=failures.append,
        on_disconnect=lambda: disconnects.append(True),
    )
    return channel, replies, failures


def test_envelopes() -> None:
    assert AudioMessage("Hello").to_envelope() == {
        "event": "audio_message",
        "data": {"transcription": "Hello"},
    }
    assert TextMessage("Hi").to_envelope() == {"event": "text_message", "data": {"message": "Hi"}}


def test_parse_server_events() -> None:
    assert parse_server_event({"event": "ai_response", "data": {"text": "Hi", "transcription": "Hello"}}) == (
        AiResponse(text="Hi", transcription="Hello")
    )
    assert parse_server_event({"event": "ai_response", "data": {"text": "Hi"}}) == AiResponse(text="Hi")
    assert parse_server_event({"event": "ai_error", "data": {"message": "boom"}}) == AiError("boom")
    assert parse_server_event({"event": "error", "data": "boom"}) == AiError("boom", legacy=True)
    assert parse_server_event({"event": "ai_response", "data": {}}) is None
    assert parse_server_event({"event": "something_else"}) is None
    assert parse_server_event("garbage") is None


def test_reply_dispatch() -> None:
    channel, replies, failures = _bound_channel()
    channel.handle_payload({"event": "ai_response", "data": {"text": "Hi!", "transcription": "Hello"}})
    assert replies == [AiResponse(text="Hi!", transcription="Hello")]
    assert failures == []


def test_legacy_echo_is_reported_once() -> None:
    channel, _, failures = _bound_channel()
    channel.handle_payload({"event": "ai_error", "data": {"message": "quota exceeded"}})
    channel.handle_payload({"event": "error", "data": "quota exceeded"})
    assert failures == ["quota exceeded"]


def test_legacy_error_alone_is_reported() -> None:
    channel, _, failures = _bound_channel()
    channel.handle_payload({"event": "error", "data": "old relay failure"})
    channel.handle_payload({"event": "error", "data": "old relay failure"})
    assert failures == ["old relay failure", "old relay failure"]


def test_distinct_failures_are_all_reported() -> None:
    channel, _, failures = _bound_channel()
    channel.handle_payload({"event": "ai_error", "data": {"message": "first"}})
    channel.handle_payload({"event": "ai_error", "data": {"message": "second"}})
    channel.handle_payload({"event": "error", "data": "second"})
    assert failures == ["first", "second"]


def test_channel_url_follows_base_url() -> None:
    assert ServerSettings().channel_url == "ws://localhost:3001/ws"
    assert ServerSettings(base_url="https://rev.example/").channel_url == "wss://rev.example/ws"


@pytest.mark.asyncio
async def test_send_without_connection_raises() -> None:
    channel, _, _ = _bound_channel()
    assert channel.connected is False
    with pytest.raises(ChannelClosedError):
        await channel.send_audio("Hello")
    await channel.close()
