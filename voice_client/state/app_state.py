"""Shared state model for the voice client."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional


class VoiceState(str, Enum):
    """Exactly one is active; it decides which user actions are legal."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ERROR = "error"


MessageType = Literal["user", "ai"]


@dataclass(frozen=True, slots=True)
class Message:
    """One transcript entry. Never mutated once appended."""

    id: str
    type: MessageType
    content: str
    timestamp: datetime

    @classmethod
    def create(cls, type: MessageType, content: str) -> "Message":
        return cls(
            id=uuid.uuid4().hex,
            type=type,
            content=content,
            timestamp=datetime.now(timezone.utc),
        )


@dataclass(frozen=True, slots=True)
class ConversationContext:
    """Snapshot handed to every transition; transitions return a new one."""

    state: VoiceState = VoiceState.IDLE
    conversation_mode: bool = False
    messages: tuple[Message, ...] = ()
    pending_turn: Optional[int] = None
    turn_counter: int = 0
    interim_transcript: str = ""
    connected: bool = True
    has_permission: Optional[bool] = None
    synthesis_available: bool = True
    recovery_scheduled: bool = False

    @property
    def processing(self) -> bool:
        return self.pending_turn is not None


@dataclass(slots=True)
class AppState:
    """Mutable holder the controller updates after each transition."""

    context: ConversationContext = field(default_factory=ConversationContext)

    @property
    def voice_state(self) -> VoiceState:
        return self.context.state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.context.messages
