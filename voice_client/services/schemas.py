"""Data schemas exchanged with the relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


AUDIO_MESSAGE = "audio_message"
TEXT_MESSAGE = "text_message"
AI_RESPONSE = "ai_response"
AI_ERROR = "ai_error"
LEGACY_ERROR = "error"


@dataclass(slots=True)
class AudioMessage:
    """Finalized transcript of a spoken utterance."""

    transcription: str

    def to_envelope(self) -> dict[str, Any]:
        return {"event": AUDIO_MESSAGE, "data": {"transcription": self.transcription}}


@dataclass(slots=True)
class TextMessage:
    """Typed user message."""

    message: str

    def to_envelope(self) -> dict[str, Any]:
        return {"event": TEXT_MESSAGE, "data": {"message": self.message}}


@dataclass(slots=True)
class AiResponse:
    """Successful reply from the relay."""

    text: str
    transcription: Optional[str] = None


@dataclass(slots=True)
class AiError:
    """Turn failure reported by the relay (``ai_error`` or legacy ``error``)."""

    message: str
    legacy: bool = False


ServerEvent = Union[AiResponse, AiError]


def parse_server_event(payload: Any) -> Optional[ServerEvent]:
    """Map a relay envelope to a typed event; unknown events yield None."""
    if not isinstance(payload, dict):
        return None
    event = payload.get("event")
    data = payload.get("data")
    if event == AI_RESPONSE and isinstance(data, dict):
        text = data.get("text")
        if not isinstance(text, str):
            return None
        transcription = data.get("transcription")
        return AiResponse(text=text, transcription=transcription if isinstance(transcription, str) else None)
    if event == AI_ERROR:
        message = data.get("message") if isinstance(data, dict) else None
        return AiError(message=str(message or "Unknown error"))
    if event == LEGACY_ERROR:
        return AiError(message=str(data or "Unknown error"), legacy=True)
    return None
