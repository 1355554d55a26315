"""WebSocket message channel to the relay."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ..config.settings import ServerSettings
from .schemas import AiError, AiResponse, AudioMessage, TextMessage, parse_server_event

LOGGER = logging.getLogger(__name__)

ReplyCallback = Callable[[AiResponse], None]
FailureCallback = Callable[[str], None]
LifecycleCallback = Callable[[], None]


class ChannelClosedError(RuntimeError):
    """Raised when sending on a channel that is not connected."""


class RelayChannel:
    """Sends transcripts to the relay and turns its replies into callbacks."""

    def __init__(self, settings: ServerSettings) -> None:
        self.settings = settings
        self._connection: Optional[ClientConnection] = None
        self._receiver: Optional[asyncio.Task[None]] = None
        self._on_reply: Optional[ReplyCallback] = None
        self._on_failure: Optional[FailureCallback] = None
        self._on_disconnect: Optional[LifecycleCallback] = None
        self._last_error: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def bind(
        self,
        on_reply: ReplyCallback,
        on_failure: FailureCallback,
        on_disconnect: LifecycleCallback,
    ) -> None:
        self._on_reply = on_reply
        self._on_failure = on_failure
        self._on_disconnect = on_disconnect

    async def connect(self) -> None:
        self._connection = await ws_connect(self.settings.channel_url, origin=self.settings.origin)
        LOGGER.info("Connected to relay at %s", self.settings.channel_url)
        self._receiver = asyncio.create_task(self._receive_loop(self._connection))

    async def send_audio(self, transcription: str) -> None:
        await self._send(AudioMessage(transcription=transcription).to_envelope())

    async def send_text(self, message: str) -> None:
        await self._send(TextMessage(message=message).to_envelope())

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if self._receiver is not None:
            self._receiver.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receiver
            self._receiver = None
        if connection is not None:
            await connection.close()

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._connection is None:
            raise ChannelClosedError("Not connected to the voice server")
        await self._connection.send(json.dumps(payload))

    async def _receive_loop(self, connection: ClientConnection) -> None:
        try:
            async for raw in connection:
                try:
                    payload = json.loads(raw)
                except (TypeError, json.JSONDecodeError):
                    LOGGER.warning("Ignoring non-JSON frame from relay")
                    continue
                self.handle_payload(payload)
        except ConnectionClosed:
            LOGGER.info("Relay connection closed")
        finally:
            if self._connection is connection:
                self._connection = None
                if self._on_disconnect:
                    self._on_disconnect()

    def handle_payload(self, payload: Any) -> None:
        """Dispatch one decoded relay envelope to the bound callbacks."""
        event = parse_server_event(payload)
        if isinstance(event, AiResponse):
            self._last_error = None
            if self._on_reply:
                self._on_reply(event)
        elif isinstance(event, AiError):
            if event.legacy and event.message == self._last_error:
                # Legacy echo of the ai_error just delivered.
                self._last_error = None
                return
            self._last_error = None if event.legacy else event.message
            if self._on_failure:
                self._on_failure(event.message)
