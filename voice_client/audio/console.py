"""Terminal stand-ins for the speech capabilities.

Typed lines play the role of finalized transcripts and replies are printed
instead of spoken, so the whole turn-taking loop runs without audio devices.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..runtime.machine import NO_SPEECH, TranscriptSegment
from .capabilities import EndCallback, ErrorCallback, RecognitionAlreadyStarted, ResultCallback

LOGGER = logging.getLogger(__name__)


class ConsoleRecognizer:
    """Recognizer fed line by line by the input loop."""

    def __init__(self) -> None:
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_end: Optional[EndCallback] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def bind(self, on_result: ResultCallback, on_error: ErrorCallback, on_end: EndCallback) -> None:
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end

    def start(self) -> None:
        if self._running:
            raise RecognitionAlreadyStarted("recognition already started")
        self._running = True
        LOGGER.debug("Console recognition started.")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        LOGGER.debug("Console recognition stopped.")
        if self._on_end:
            self._on_end()

    def feed(self, line: str) -> bool:
        """Deliver one typed line; return False when nobody is listening."""
        if not self._running:
            return False
        if not line.strip():
            if self._on_error:
                self._on_error(NO_SPEECH)
            return True
        if self._on_result:
            self._on_result([TranscriptSegment(text=line, final=True)])
        return True


class ConsoleSynthesizer:
    """Prints replies and reports completion after a reading delay."""

    def __init__(
        self,
        printer: Callable[[str], None] = print,
        *,
        seconds_per_word: float = 0.05,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._printer = printer
        self.seconds_per_word = seconds_per_word
        self._loop = loop
        self._on_end: Optional[EndCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._pending: Optional[asyncio.TimerHandle] = None

    @property
    def available(self) -> bool:
        return True

    @property
    def speaking(self) -> bool:
        return self._pending is not None

    def bind(self, on_end: EndCallback, on_error: ErrorCallback) -> None:
        self._on_end = on_end
        self._on_error = on_error

    def speak(self, text: str) -> None:
        self.cancel()
        try:
            self._printer(f"Rev: {text}")
        except Exception as exc:
            if self._on_error:
                self._on_error(str(exc))
            return
        loop = self._loop or asyncio.get_running_loop()
        duration = max(0.0, len(text.split()) * self.seconds_per_word)
        self._pending = loop.call_later(duration, self._finish)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _finish(self) -> None:
        self._pending = None
        if self._on_end:
            self._on_end()


class ConsoleMicrophone:
    """The terminal needs no microphone permission."""

    async def request(self) -> bool:
        return True
