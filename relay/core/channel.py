from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from relay.core.config import get_settings

AUDIO_MESSAGE = "audio_message"
TEXT_MESSAGE = "text_message"
AI_RESPONSE = "ai_response"
AI_ERROR = "ai_error"
LEGACY_ERROR = "error"


def serialize_event(event: str, data: Any) -> dict[str, Any]:
    """Wrap a payload in the channel envelope."""
    return {"event": event, "data": data}


def parse_event(raw: Any) -> tuple[str | None, dict[str, Any]]:
    """Return ``(event, data)`` from an incoming envelope."""
    if not isinstance(raw, dict):
        return None, {}
    event = raw.get("event")
    data = raw.get("data")
    if not isinstance(event, str):
        return None, {}
    return event, data if isinstance(data, dict) else {}


class ChannelSender:
    """Serializes sends on one socket so concurrent turns never interleave frames."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.websocket.application_state == WebSocketState.CONNECTED

    async def send_event(self, event: str, data: Any) -> None:
        async with self._lock:
            if self.connected:
                await self.websocket.send_json(serialize_event(event, data))

    async def send_ai_response(self, text: str, transcription: str | None = None) -> None:
        payload: dict[str, Any] = {"text": text}
        if transcription is not None:
            payload["transcription"] = transcription
        await self.send_event(AI_RESPONSE, payload)

    async def send_ai_error(self, message: str) -> None:
        """Report a failed turn, plus the bare ``error`` event older clients expect."""
        await self.send_event(AI_ERROR, {"message": message})
        if get_settings().legacy_error_event:
            await self.send_event(LEGACY_ERROR, message)
