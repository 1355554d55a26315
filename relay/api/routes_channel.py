from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from relay.core.channel import AUDIO_MESSAGE, TEXT_MESSAGE, ChannelSender, parse_event
from relay.core.config import get_settings
from relay.core.errors import EmptyInputError, RelayError
from relay.core.logger import get_logger
from relay.core.relay import generate_reply
from relay.core.trace import new_trace_id, set_trace_id

router = APIRouter(tags=["channel"])
logger = get_logger("channel")


def _origin_allowed(origin: str | None) -> bool:
    settings = get_settings()
    if origin is None or settings.allow_any_origin:
        return True
    return origin in settings.cors_origins


async def _handle_turn(sender: ChannelSender, event: str, data: dict[str, Any], trace_id: str) -> None:
    """Run one relay turn; failures end the turn, never the connection."""
    set_trace_id(trace_id)
    if event == AUDIO_MESSAGE:
        text = data.get("transcription")
    else:
        text = data.get("message")
    try:
        if not isinstance(text, str) or not text.strip():
            raise EmptyInputError()
        reply = await generate_reply(text)
    except RelayError as exc:
        logger.warning("Turn failed (%s): %s", exc.code, exc.message)
        await sender.send_ai_error(exc.message)
        return
    if event == AUDIO_MESSAGE:
        await sender.send_ai_response(reply, transcription=text)
    else:
        await sender.send_ai_response(reply)


@router.websocket("/ws")
async def channel(websocket: WebSocket) -> None:
    """Bidirectional message channel between the voice client and the relay."""
    origin = websocket.headers.get("origin")
    if not _origin_allowed(origin):
        logger.warning("Channel rejected for origin %s", origin)
        await websocket.close(code=1008)
        return

    await websocket.accept()
    trace_id = new_trace_id("ws")
    logger.info("Client connected", extra={"client": str(websocket.client)})
    sender = ChannelSender(websocket)
    tasks: set[asyncio.Task[None]] = set()

    try:
        while True:
            raw_message = await websocket.receive_text()
            try:
                raw = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON frame", extra={"raw": raw_message[:64]})
                continue
            event, data = parse_event(raw)
            if event not in (AUDIO_MESSAGE, TEXT_MESSAGE):
                logger.info("Ignoring unknown channel event %r", event)
                continue
            task = asyncio.create_task(_handle_turn(sender, event, data, trace_id))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    except WebSocketDisconnect:
        logger.info("Client disconnected", extra={"client": str(websocket.client)})
    finally:
        for task in list(tasks):
            task.cancel()
