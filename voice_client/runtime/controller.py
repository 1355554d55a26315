"""Runs the conversation state machine against real capabilities."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from typing import Awaitable, Callable, Optional, Sequence

from ..audio.capabilities import MicrophoneGate, RecognitionAlreadyStarted, SpeechRecognizer, SpeechSynthesizer
from ..services.channel import RelayChannel
from ..services.schemas import AiResponse
from ..state.app_state import AppState, ConversationContext, VoiceState
from .machine import (
    ArmResponseTimer,
    CancelRecovery,
    CancelResponseTimer,
    CancelSpeech,
    ChannelConnected,
    ChannelConnecting,
    ChannelDisconnected,
    Effect,
    Event,
    MachinePolicy,
    Notify,
    PermissionResolved,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    RecoveryDue,
    RelayFailed,
    RelayReplied,
    ResponseTimedOut,
    ScheduleRecovery,
    SendTranscript,
    Speak,
    StartRecognition,
    StartRequested,
    StopRecognition,
    StopRequested,
    SynthesisEnded,
    SynthesisFailed,
    TextSubmitted,
    TranscriptSegment,
    transition,
)

LOGGER = logging.getLogger(__name__)

NotifyCallback = Callable[[Notify], None]
ChangeCallback = Callable[[ConversationContext], None]


class ConversationController:
    """Single entry point for every recognition, synthesis, channel and timer event.

    Callbacks never touch the state directly: they call :meth:`dispatch`,
    which runs one transition and then executes its effects. Events raised
    while effects are running are queued and applied afterwards, in order.
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        synthesizer: SpeechSynthesizer,
        channel: RelayChannel,
        *,
        microphone: Optional[MicrophoneGate] = None,
        policy: Optional[MachinePolicy] = None,
        state: Optional[AppState] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.recognizer = recognizer
        self.synthesizer = synthesizer
        self.channel = channel
        self.microphone = microphone
        self.policy = policy or MachinePolicy()
        self.state = state or AppState()
        self.state.context = self._with_synthesis(self.state.context)
        self._loop = loop

        self._response_timer: Optional[asyncio.TimerHandle] = None
        self._recovery_timer: Optional[asyncio.TimerHandle] = None
        self._send_tasks: set[asyncio.Task[None]] = set()
        self._pending_events: deque[Event] = deque()
        self._dispatching = False

        self._notify_callback: Optional[NotifyCallback] = None
        self._change_callback: Optional[ChangeCallback] = None

        recognizer.bind(
            on_result=self._handle_recognition_result,
            on_error=lambda kind: self.dispatch(RecognitionError(kind)),
            on_end=lambda: self.dispatch(RecognitionEnded()),
        )
        synthesizer.bind(
            on_end=lambda: self.dispatch(SynthesisEnded()),
            on_error=lambda error: self.dispatch(SynthesisFailed(error)),
        )
        channel.bind(
            on_reply=self._handle_reply,
            on_failure=lambda message: self.dispatch(RelayFailed(message)),
            on_disconnect=lambda: self.dispatch(ChannelDisconnected()),
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def context(self) -> ConversationContext:
        return self.state.context

    @property
    def voice_state(self) -> VoiceState:
        return self.state.context.state

    @property
    def response_timer_armed(self) -> bool:
        return self._response_timer is not None

    def set_notify_callback(self, callback: Optional[NotifyCallback]) -> None:
        """Register a callback receiving user-facing notifications."""
        self._notify_callback = callback

    def set_change_callback(self, callback: Optional[ChangeCallback]) -> None:
        """Register a callback invoked after each state-changing transition."""
        self._change_callback = callback

    async def connect(self) -> None:
        """Ask for the microphone, then open the relay channel."""
        if self.microphone is not None:
            granted = await self.microphone.request()
            self.dispatch(PermissionResolved(granted))
        self.dispatch(ChannelConnecting())
        try:
            await self.channel.connect()
        except Exception as exc:
            LOGGER.warning("Relay connection failed: %s", exc)
            self.dispatch(ChannelDisconnected())
            self._notify(Notify("Connection Error", f"Could not connect to the voice server: {exc}"))
            return
        self.dispatch(ChannelConnected())

    def start(self) -> None:
        """Start listening and enter conversation mode."""
        self.dispatch(StartRequested(user_initiated=True))

    def stop(self) -> None:
        """End the conversation: speech, recognition, mode and timer all at once."""
        self.dispatch(StopRequested())

    def toggle(self) -> None:
        """Start when idle or failed, stop otherwise."""
        if self.voice_state in (VoiceState.IDLE, VoiceState.ERROR):
            self.start()
        else:
            self.stop()

    def submit_text(self, text: str) -> None:
        self.dispatch(TextSubmitted(text))

    async def close(self) -> None:
        self.stop()
        for task in list(self._send_tasks):
            task.cancel()
        self._send_tasks.clear()
        await self.channel.close()

    def dispatch(self, event: Event) -> None:
        """Apply one event; re-entrant calls are queued."""
        self._pending_events.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending_events:
                self._apply(self._pending_events.popleft())
        finally:
            self._dispatching = False

    def dispatch_threadsafe(self, event: Event) -> None:
        self.loop.call_soon_threadsafe(self.dispatch, event)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    # ------------------------------------------------------------------ #
    # Transition + effects
    # ------------------------------------------------------------------ #
    def _apply(self, event: Event) -> None:
        before = self.state.context
        result = transition(before, event, self.policy)
        self.state.context = result.context
        if result.context.state != before.state:
            LOGGER.info("Voice state %s -> %s (%s)", before.state.value, result.context.state.value, type(event).__name__)
        for effect in result.effects:
            self._execute(effect)
        if result.context != before and self._change_callback:
            try:
                self._change_callback(result.context)
            except Exception:  # pragma: no cover - UI callback
                LOGGER.exception("Change callback failed")

    def _execute(self, effect: Effect) -> None:
        if isinstance(effect, StartRecognition):
            self._start_recognition()
        elif isinstance(effect, StopRecognition):
            self.recognizer.stop()
        elif isinstance(effect, SendTranscript):
            self._send(effect)
        elif isinstance(effect, ArmResponseTimer):
            self._cancel_response_timer()
            self._response_timer = self.loop.call_later(
                effect.seconds, self._fire_timeout, effect.turn
            )
        elif isinstance(effect, CancelResponseTimer):
            self._cancel_response_timer()
        elif isinstance(effect, Speak):
            self.synthesizer.cancel()
            self.synthesizer.speak(effect.text)
        elif isinstance(effect, CancelSpeech):
            self.synthesizer.cancel()
        elif isinstance(effect, ScheduleRecovery):
            self._cancel_recovery()
            self._recovery_timer = self.loop.call_later(effect.seconds, self._fire_recovery)
        elif isinstance(effect, CancelRecovery):
            self._cancel_recovery()
        elif isinstance(effect, Notify):
            self._notify(effect)
        else:  # pragma: no cover - exhaustive over Effect
            raise TypeError(f"Unsupported effect: {effect!r}")

    def _start_recognition(self) -> None:
        try:
            self.recognizer.start()
        except RecognitionAlreadyStarted:
            LOGGER.debug("Recognition already running; restart skipped")

    def _send(self, effect: SendTranscript) -> None:
        if effect.kind == "text":
            coroutine: Awaitable[None] = self.channel.send_text(effect.text)
        else:
            coroutine = self.channel.send_audio(effect.text)
        task = self.loop.create_task(self._run_send(coroutine, effect.turn))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _run_send(self, coroutine: Awaitable[None], turn: int) -> None:
        try:
            await coroutine
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Sending turn %s failed: %s", turn, exc)
            if self.state.context.pending_turn == turn:
                self.dispatch(RelayFailed(str(exc) or "Failed to send message"))

    def _fire_timeout(self, turn: int) -> None:
        self._response_timer = None
        self.dispatch(ResponseTimedOut(turn))

    def _fire_recovery(self) -> None:
        self._recovery_timer = None
        self.dispatch(RecoveryDue())

    def _cancel_response_timer(self) -> None:
        if self._response_timer is not None:
            self._response_timer.cancel()
            self._response_timer = None

    def _cancel_recovery(self) -> None:
        if self._recovery_timer is not None:
            self._recovery_timer.cancel()
            self._recovery_timer = None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _handle_recognition_result(self, segments: Sequence[TranscriptSegment]) -> None:
        self.dispatch(RecognitionResult(tuple(segments)))

    def _handle_reply(self, response: AiResponse) -> None:
        self.dispatch(RelayReplied(response.text))

    def _notify(self, notice: Notify) -> None:
        LOGGER.info("Notification: %s - %s", notice.title, notice.description)
        if self._notify_callback:
            try:
                self._notify_callback(notice)
            except Exception:  # pragma: no cover - UI callback
                LOGGER.exception("Notify callback failed")

    def _with_synthesis(self, ctx: ConversationContext) -> ConversationContext:
        return replace(ctx, synthesis_available=bool(self.synthesizer.available))
