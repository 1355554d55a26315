"""Conversation state machine.

``transition`` is a pure function: it takes the current
:class:`ConversationContext` and one event, and returns the next context plus
the effects the controller has to carry out (start recognition, send a
transcript, arm a timer, speak...). Nothing here touches a recognizer, a
socket or a clock, which keeps every turn-taking rule testable on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Literal, Union

from ..state.app_state import ConversationContext, Message, VoiceState

NO_SPEECH = "no-speech"


# ---------------------------------------------------------------------- #
# Events
# ---------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class TranscriptSegment:
    text: str
    final: bool = False


@dataclass(frozen=True, slots=True)
class StartRequested:
    user_initiated: bool = True


@dataclass(frozen=True, slots=True)
class StopRequested:
    pass


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """Segments of one recognition event, interim and final mixed."""

    segments: tuple[TranscriptSegment, ...]


@dataclass(frozen=True, slots=True)
class RecognitionError:
    kind: str


@dataclass(frozen=True, slots=True)
class RecognitionEnded:
    pass


@dataclass(frozen=True, slots=True)
class TextSubmitted:
    text: str


@dataclass(frozen=True, slots=True)
class RelayReplied:
    text: str


@dataclass(frozen=True, slots=True)
class RelayFailed:
    message: str


@dataclass(frozen=True, slots=True)
class ResponseTimedOut:
    turn: int


@dataclass(frozen=True, slots=True)
class SynthesisEnded:
    pass


@dataclass(frozen=True, slots=True)
class SynthesisFailed:
    error: str = ""


@dataclass(frozen=True, slots=True)
class RecoveryDue:
    pass


@dataclass(frozen=True, slots=True)
class ChannelConnecting:
    pass


@dataclass(frozen=True, slots=True)
class ChannelConnected:
    pass


@dataclass(frozen=True, slots=True)
class ChannelDisconnected:
    pass


@dataclass(frozen=True, slots=True)
class PermissionResolved:
    granted: bool


Event = Union[
    StartRequested,
    StopRequested,
    RecognitionResult,
    RecognitionError,
    RecognitionEnded,
    TextSubmitted,
    RelayReplied,
    RelayFailed,
    ResponseTimedOut,
    SynthesisEnded,
    SynthesisFailed,
    RecoveryDue,
    ChannelConnecting,
    ChannelConnected,
    ChannelDisconnected,
    PermissionResolved,
]


# ---------------------------------------------------------------------- #
# Effects
# ---------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class StartRecognition:
    pass


@dataclass(frozen=True, slots=True)
class StopRecognition:
    pass


@dataclass(frozen=True, slots=True)
class SendTranscript:
    text: str
    turn: int
    kind: Literal["audio", "text"] = "audio"


@dataclass(frozen=True, slots=True)
class ArmResponseTimer:
    turn: int
    seconds: float


@dataclass(frozen=True, slots=True)
class CancelResponseTimer:
    pass


@dataclass(frozen=True, slots=True)
class Speak:
    text: str


@dataclass(frozen=True, slots=True)
class CancelSpeech:
    pass


@dataclass(frozen=True, slots=True)
class ScheduleRecovery:
    seconds: float


@dataclass(frozen=True, slots=True)
class CancelRecovery:
    pass


@dataclass(frozen=True, slots=True)
class Notify:
    title: str
    description: str
    destructive: bool = True


Effect = Union[
    StartRecognition,
    StopRecognition,
    SendTranscript,
    ArmResponseTimer,
    CancelResponseTimer,
    Speak,
    CancelSpeech,
    ScheduleRecovery,
    CancelRecovery,
    Notify,
]


@dataclass(frozen=True, slots=True)
class MachinePolicy:
    response_timeout: float = 10.0
    recovery_delay: float = 1.0


@dataclass(frozen=True, slots=True)
class Transition:
    context: ConversationContext
    effects: tuple[Effect, ...] = field(default_factory=tuple)


DEFAULT_POLICY = MachinePolicy()

# States in which a finalized transcript may open a new turn.
_TURN_OPEN_STATES = (VoiceState.IDLE, VoiceState.LISTENING, VoiceState.ERROR)


def _stay(ctx: ConversationContext, *effects: Effect) -> Transition:
    return Transition(ctx, tuple(effects))


def _begin_turn(
    ctx: ConversationContext, text: str, kind: Literal["audio", "text"], policy: MachinePolicy
) -> Transition:
    turn = ctx.turn_counter + 1
    effects: list[Effect] = []
    if ctx.recovery_scheduled:
        effects.append(CancelRecovery())
    effects += [
        CancelResponseTimer(),
        ArmResponseTimer(turn=turn, seconds=policy.response_timeout),
        SendTranscript(text=text, turn=turn, kind=kind),
    ]
    new_ctx = replace(
        ctx,
        state=VoiceState.PROCESSING,
        messages=ctx.messages + (Message.create("user", text),),
        pending_turn=turn,
        turn_counter=turn,
        interim_transcript="",
        recovery_scheduled=False,
    )
    return Transition(new_ctx, tuple(effects))


def _fail_turn(
    ctx: ConversationContext, notice: Notify, policy: MachinePolicy, *, recover: bool
) -> Transition:
    """Enter ``error``; in conversation mode, optionally schedule a re-listen."""
    effects: list[Effect] = [CancelResponseTimer(), notice]
    if ctx.state == VoiceState.SPEAKING:
        effects.insert(0, CancelSpeech())
    recovery = False
    if recover and ctx.conversation_mode:
        effects.append(ScheduleRecovery(seconds=policy.recovery_delay))
        recovery = True
    elif ctx.recovery_scheduled:
        effects.append(CancelRecovery())
    new_ctx = replace(
        ctx,
        state=VoiceState.ERROR,
        pending_turn=None,
        interim_transcript="",
        recovery_scheduled=recovery,
    )
    return Transition(new_ctx, tuple(effects))


# ---------------------------------------------------------------------- #
# Handlers
# ---------------------------------------------------------------------- #
def _on_start(ctx: ConversationContext, event: StartRequested, policy: MachinePolicy) -> Transition:
    if ctx.state not in (VoiceState.IDLE, VoiceState.ERROR):
        return _stay(ctx)
    if not ctx.connected:
        return _stay(ctx, Notify("Connection Error", "Not connected to the voice server"))
    if ctx.has_permission is False:
        return _stay(
            ctx,
            Notify("Microphone Access Required", "Please allow microphone access to use voice chat"),
        )
    effects: list[Effect] = []
    if ctx.recovery_scheduled:
        effects.append(CancelRecovery())
    effects.append(StartRecognition())
    new_ctx = replace(
        ctx,
        state=VoiceState.LISTENING,
        conversation_mode=True if event.user_initiated else ctx.conversation_mode,
        interim_transcript="",
        recovery_scheduled=False,
    )
    return Transition(new_ctx, tuple(effects))


def _on_stop(ctx: ConversationContext, event: StopRequested, policy: MachinePolicy) -> Transition:
    new_ctx = replace(
        ctx,
        state=VoiceState.IDLE,
        conversation_mode=False,
        pending_turn=None,
        interim_transcript="",
        recovery_scheduled=False,
    )
    return Transition(
        new_ctx,
        (CancelSpeech(), StopRecognition(), CancelResponseTimer(), CancelRecovery()),
    )


def _on_result(ctx: ConversationContext, event: RecognitionResult, policy: MachinePolicy) -> Transition:
    if ctx.state not in _TURN_OPEN_STATES:
        # A turn is in flight or being spoken: late recognizer output is dropped.
        return _stay(ctx)
    final_text = "".join(s.text for s in event.segments if s.final).strip()
    if not final_text:
        interim = "".join(s.text for s in event.segments if not s.final)
        return _stay(replace(ctx, interim_transcript=interim))
    return _begin_turn(ctx, final_text, "audio", policy)


def _on_recognition_error(
    ctx: ConversationContext, event: RecognitionError, policy: MachinePolicy
) -> Transition:
    if event.kind == NO_SPEECH:
        return _stay(ctx)
    notice = Notify("Speech Recognition Error", f"Error: {event.kind}")
    return _fail_turn(ctx, notice, policy, recover=False)


def _on_recognition_end(
    ctx: ConversationContext, event: RecognitionEnded, policy: MachinePolicy
) -> Transition:
    if ctx.conversation_mode and ctx.state != VoiceState.SPEAKING:
        return _stay(ctx, StartRecognition())
    if ctx.state == VoiceState.LISTENING:
        return Transition(replace(ctx, state=VoiceState.IDLE, interim_transcript=""))
    return _stay(ctx)


def _on_text(ctx: ConversationContext, event: TextSubmitted, policy: MachinePolicy) -> Transition:
    text = event.text.strip()
    if not text or ctx.state not in _TURN_OPEN_STATES:
        return _stay(ctx)
    if not ctx.connected:
        return _stay(ctx, Notify("Connection Error", "Not connected to the voice server"))
    return _begin_turn(ctx, text, "text", policy)


def _on_reply(ctx: ConversationContext, event: RelayReplied, policy: MachinePolicy) -> Transition:
    if ctx.pending_turn is None or ctx.state != VoiceState.PROCESSING:
        # Reply to a turn that already timed out or was stopped.
        return _stay(ctx)
    base = replace(
        ctx,
        messages=ctx.messages + (Message.create("ai", event.text),),
        pending_turn=None,
        interim_transcript="",
    )
    if not ctx.synthesis_available:
        return Transition(
            replace(base, state=VoiceState.IDLE),
            (CancelResponseTimer(), StopRecognition()),
        )
    return Transition(
        replace(base, state=VoiceState.SPEAKING),
        (CancelResponseTimer(), StopRecognition(), Speak(event.text)),
    )


def _on_relay_failure(ctx: ConversationContext, event: RelayFailed, policy: MachinePolicy) -> Transition:
    notice = Notify("Connection Error", event.message)
    if ctx.pending_turn is None:
        # The turn already ended (reply, timeout or stop).
        return _stay(ctx, notice)
    return _fail_turn(ctx, notice, policy, recover=True)


def _on_timeout(ctx: ConversationContext, event: ResponseTimedOut, policy: MachinePolicy) -> Transition:
    if ctx.pending_turn is None or event.turn != ctx.pending_turn:
        return _stay(ctx)
    notice = Notify("Timeout", "Rev took too long to respond. Please try again.")
    return _fail_turn(ctx, notice, policy, recover=True)


def _finish_speaking(ctx: ConversationContext) -> Transition:
    if ctx.state != VoiceState.SPEAKING:
        return _stay(ctx)
    if ctx.conversation_mode:
        return Transition(replace(ctx, state=VoiceState.LISTENING), (StartRecognition(),))
    return Transition(replace(ctx, state=VoiceState.IDLE))


def _on_synthesis_end(ctx: ConversationContext, event: SynthesisEnded, policy: MachinePolicy) -> Transition:
    return _finish_speaking(ctx)


def _on_synthesis_error(ctx: ConversationContext, event: SynthesisFailed, policy: MachinePolicy) -> Transition:
    return _finish_speaking(ctx)


def _on_recovery(ctx: ConversationContext, event: RecoveryDue, policy: MachinePolicy) -> Transition:
    if not ctx.recovery_scheduled:
        return _stay(ctx)
    ctx = replace(ctx, recovery_scheduled=False)
    if not ctx.conversation_mode or not ctx.connected or ctx.state not in (VoiceState.ERROR, VoiceState.IDLE):
        return _stay(ctx)
    return Transition(replace(ctx, state=VoiceState.LISTENING), (StartRecognition(),))


def _on_connecting(ctx: ConversationContext, event: ChannelConnecting, policy: MachinePolicy) -> Transition:
    state = VoiceState.CONNECTING if ctx.state == VoiceState.IDLE else ctx.state
    return Transition(replace(ctx, state=state, connected=False))


def _on_connected(ctx: ConversationContext, event: ChannelConnected, policy: MachinePolicy) -> Transition:
    state = VoiceState.IDLE if ctx.state == VoiceState.CONNECTING else ctx.state
    return Transition(replace(ctx, state=state, connected=True))


def _on_disconnected(
    ctx: ConversationContext, event: ChannelDisconnected, policy: MachinePolicy
) -> Transition:
    state = VoiceState.SPEAKING if ctx.state == VoiceState.SPEAKING else VoiceState.IDLE
    new_ctx = replace(
        ctx,
        state=state,
        connected=False,
        conversation_mode=False,
        pending_turn=None,
        interim_transcript="",
        recovery_scheduled=False,
    )
    return Transition(new_ctx, (StopRecognition(), CancelResponseTimer(), CancelRecovery()))


def _on_permission(ctx: ConversationContext, event: PermissionResolved, policy: MachinePolicy) -> Transition:
    if event.granted:
        return Transition(replace(ctx, has_permission=True))
    new_ctx = replace(
        ctx,
        has_permission=False,
        state=VoiceState.ERROR,
        conversation_mode=False,
        recovery_scheduled=False,
    )
    return Transition(
        new_ctx,
        (
            StopRecognition(),
            CancelRecovery(),
            Notify("Microphone Access Required", "Please allow microphone access to use voice chat"),
        ),
    )


_HANDLERS: dict[type, Callable[[ConversationContext, object, MachinePolicy], Transition]] = {
    StartRequested: _on_start,
    StopRequested: _on_stop,
    RecognitionResult: _on_result,
    RecognitionError: _on_recognition_error,
    RecognitionEnded: _on_recognition_end,
    TextSubmitted: _on_text,
    RelayReplied: _on_reply,
    RelayFailed: _on_relay_failure,
    ResponseTimedOut: _on_timeout,
    SynthesisEnded: _on_synthesis_end,
    SynthesisFailed: _on_synthesis_error,
    RecoveryDue: _on_recovery,
    ChannelConnecting: _on_connecting,
    ChannelConnected: _on_connected,
    ChannelDisconnected: _on_disconnected,
    PermissionResolved: _on_permission,
}


def transition(
    ctx: ConversationContext, event: Event, policy: MachinePolicy = DEFAULT_POLICY
) -> Transition:
    """Apply ``event`` to ``ctx``."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unsupported event: {event!r}")
    return handler(ctx, event, policy)
