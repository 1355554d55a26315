"""Contracts for the speech capabilities the controller drives."""

from __future__ import annotations

from typing import Callable, Protocol, Sequence

from ..runtime.machine import TranscriptSegment


ResultCallback = Callable[[Sequence[TranscriptSegment]], None]
ErrorCallback = Callable[[str], None]
EndCallback = Callable[[], None]


class RecognitionAlreadyStarted(RuntimeError):
    """Raised by ``start`` when a recognition session is already running."""


class SpeechRecognizer(Protocol):
    """Continuous recognizer producing interim and final transcript segments."""

    def bind(self, on_result: ResultCallback, on_error: ErrorCallback, on_end: EndCallback) -> None:
        """Register the lifecycle callbacks."""

    def start(self) -> None:
        """Start a session; raise RecognitionAlreadyStarted if one is running."""

    def stop(self) -> None:
        """Stop the session if any; ``on_end`` fires once it is over."""


class SpeechSynthesizer(Protocol):
    """Text-to-speech sink. One utterance at a time."""

    @property
    def available(self) -> bool:
        """False when the platform offers no synthesis."""

    def bind(self, on_end: EndCallback, on_error: ErrorCallback) -> None:
        """Register completion callbacks."""

    def speak(self, text: str) -> None:
        """Speak ``text``, cancelling any pending utterance first."""

    def cancel(self) -> None:
        """Drop the current utterance without firing ``on_end``."""


class MicrophoneGate(Protocol):
    """Permission prompt for the microphone."""

    async def request(self) -> bool:
        """Return True when access is granted."""
