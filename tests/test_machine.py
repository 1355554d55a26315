from dataclasses import replace

import pytest

from voice_client.runtime.machine import (
    NO_SPEECH,
    ArmResponseTimer,
    CancelRecovery,
    CancelResponseTimer,
    CancelSpeech,
    ChannelConnected,
    ChannelConnecting,
    ChannelDisconnected,
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
from voice_client.state.app_state import ConversationContext, VoiceState

POLICY = MachinePolicy(response_timeout=10.0, recovery_delay=1.0)


def _final(text: str) -> RecognitionResult:
    return RecognitionResult((TranscriptSegment(text, final=True),))


def _run(ctx: ConversationContext, *events):
    effects = []
    for event in events:
        result = transition(ctx, event, POLICY)
        ctx = result.context
        effects.append(result.effects)
    return ctx, effects


def _listening() -> ConversationContext:
    ctx, _ = _run(ConversationContext(), StartRequested())
    return ctx


def _processing() -> ConversationContext:
    ctx, _ = _run(_listening(), _final("Hello Rev"))
    return ctx


def _speaking() -> ConversationContext:
    ctx, _ = _run(_processing(), RelayReplied("Hi!"))
    return ctx


def _error() -> ConversationContext:
    ctx, _ = _run(_processing(), ResponseTimedOut(1))
    return ctx


ALL_STATES = {
    "idle": ConversationContext,
    "listening": _listening,
    "processing": _processing,
    "speaking": _speaking,
    "error": _error,
}


def test_start_enters_listening_and_conversation_mode() -> None:
    result = transition(ConversationContext(), StartRequested(), POLICY)
    assert result.context.state is VoiceState.LISTENING
    assert result.context.conversation_mode is True
    assert result.effects == (StartRecognition(),)


def test_start_ignored_while_busy() -> None:
    for ctx in (_processing(), _speaking(), _listening()):
        result = transition(ctx, StartRequested(), POLICY)
        assert result.context == ctx
        assert result.effects == ()


def test_start_requires_connection() -> None:
    ctx = ConversationContext(connected=False)
    result = transition(ctx, StartRequested(), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.effects == (Notify("Connection Error", "Not connected to the voice server"),)


def test_start_requires_permission() -> None:
    ctx = ConversationContext(has_permission=False, state=VoiceState.ERROR)
    result = transition(ctx, StartRequested(), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert result.effects[0].title == "Microphone Access Required"


def test_final_transcript_opens_turn() -> None:
    result = transition(_listening(), _final("  Hello Rev "), POLICY)
    ctx = result.context
    assert ctx.state is VoiceState.PROCESSING
    assert ctx.pending_turn == 1
    assert ctx.processing is True
    assert [m.content for m in ctx.messages] == ["Hello Rev"]
    assert ctx.messages[0].type == "user"
    assert result.effects == (
        CancelResponseTimer(),
        ArmResponseTimer(turn=1, seconds=10.0),
        SendTranscript(text="Hello Rev", turn=1, kind="audio"),
    )


def test_final_segments_are_concatenated() -> None:
    event = RecognitionResult(
        (
            TranscriptSegment("What's the ", final=True),
            TranscriptSegment("range", final=True),
            TranscriptSegment(" of", final=False),
        )
    )
    result = transition(_listening(), event, POLICY)
    assert result.context.messages[-1].content == "What's the range"


def test_interim_only_updates_live_text() -> None:
    event = RecognitionResult((TranscriptSegment("Hel"), TranscriptSegment("lo")))
    result = transition(_listening(), event, POLICY)
    assert result.context.state is VoiceState.LISTENING
    assert result.context.interim_transcript == "Hello"
    assert result.context.messages == ()
    assert result.effects == ()


def test_whitespace_final_is_discarded() -> None:
    result = transition(_listening(), _final("   "), POLICY)
    assert result.context.state is VoiceState.LISTENING
    assert result.context.messages == ()
    assert not any(isinstance(e, SendTranscript) for e in result.effects)


def test_final_transcript_while_processing_is_dropped() -> None:
    ctx = _processing()
    result = transition(ctx, _final("Are you there?"), POLICY)
    assert result.context == ctx
    assert result.effects == ()


def test_final_transcript_from_idle_opens_turn() -> None:
    result = transition(ConversationContext(), _final("hi"), POLICY)
    assert result.context.state is VoiceState.PROCESSING


def test_reply_moves_to_speaking() -> None:
    result = transition(_processing(), RelayReplied("Hi! I'm Rev."), POLICY)
    ctx = result.context
    assert ctx.state is VoiceState.SPEAKING
    assert ctx.pending_turn is None
    assert ctx.messages[-1].type == "ai"
    assert ctx.messages[-1].content == "Hi! I'm Rev."
    assert result.effects == (CancelResponseTimer(), StopRecognition(), Speak("Hi! I'm Rev."))


def test_reply_without_synthesis_ends_in_idle() -> None:
    ctx = replace(_processing(), synthesis_available=False)
    result = transition(ctx, RelayReplied("text only"), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.context.messages[-1].content == "text only"
    assert not any(isinstance(e, Speak) for e in result.effects)


def test_late_reply_is_dropped() -> None:
    ctx = _error()
    result = transition(ctx, RelayReplied("too late"), POLICY)
    assert result.context == ctx
    assert result.effects == ()


@pytest.mark.parametrize("event", [SynthesisEnded(), SynthesisFailed("audio busy")])
def test_speech_end_relistens_in_conversation_mode(event) -> None:
    result = transition(_speaking(), event, POLICY)
    assert result.context.state is VoiceState.LISTENING
    assert result.effects == (StartRecognition(),)


def test_speech_end_outside_conversation_mode_goes_idle() -> None:
    ctx = replace(_speaking(), conversation_mode=False)
    result = transition(ctx, SynthesisEnded(), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.effects == ()


@pytest.mark.parametrize("name", sorted(ALL_STATES))
def test_stop_from_every_state(name) -> None:
    ctx = ALL_STATES[name]()
    result = transition(ctx, StopRequested(), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.context.conversation_mode is False
    assert result.context.pending_turn is None
    assert result.context.recovery_scheduled is False
    assert set(result.effects) == {CancelSpeech(), StopRecognition(), CancelResponseTimer(), CancelRecovery()}


def test_timeout_fails_turn_and_schedules_recovery() -> None:
    result = transition(_processing(), ResponseTimedOut(1), POLICY)
    ctx = result.context
    assert ctx.state is VoiceState.ERROR
    assert ctx.pending_turn is None
    assert ctx.recovery_scheduled is True
    assert Notify("Timeout", "Rev took too long to respond. Please try again.") in result.effects
    assert ScheduleRecovery(seconds=1.0) in result.effects


def test_stale_timeout_is_ignored() -> None:
    ctx = _processing()
    result = transition(ctx, ResponseTimedOut(99), POLICY)
    assert result.context == ctx
    assert result.effects == ()


def test_recovery_returns_to_listening() -> None:
    result = transition(_error(), RecoveryDue(), POLICY)
    assert result.context.state is VoiceState.LISTENING
    assert result.context.recovery_scheduled is False
    assert result.effects == (StartRecognition(),)


def test_recovery_after_stop_is_ignored() -> None:
    ctx, _ = _run(_error(), StopRequested())
    result = transition(ctx, RecoveryDue(), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.effects == ()


def test_timeout_outside_conversation_mode_has_no_recovery() -> None:
    ctx = replace(_processing(), conversation_mode=False)
    result = transition(ctx, ResponseTimedOut(1), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert not any(isinstance(e, ScheduleRecovery) for e in result.effects)


def test_relay_failure_fails_turn() -> None:
    result = transition(_processing(), RelayFailed("quota exceeded"), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert Notify("Connection Error", "quota exceeded") in result.effects
    assert CancelResponseTimer() in result.effects


def test_relay_failure_while_speaking_only_notifies() -> None:
    ctx = _speaking()
    result = transition(ctx, RelayFailed("late"), POLICY)
    assert result.context == ctx
    assert result.effects == (Notify("Connection Error", "late"),)


def test_no_speech_is_silent() -> None:
    ctx = _listening()
    result = transition(ctx, RecognitionError(NO_SPEECH), POLICY)
    assert result.context == ctx
    assert result.effects == ()


def test_recognition_error_enters_error() -> None:
    result = transition(_listening(), RecognitionError("audio-capture"), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert Notify("Speech Recognition Error", "Error: audio-capture") in result.effects
    assert not any(isinstance(e, ScheduleRecovery) for e in result.effects)


def test_recognition_error_during_turn_fails_turn() -> None:
    result = transition(_processing(), RecognitionError("network"), POLICY)
    ctx = result.context
    assert ctx.state is VoiceState.ERROR
    assert ctx.pending_turn is None
    assert ctx.recovery_scheduled is False
    assert result.effects == (
        CancelResponseTimer(),
        Notify("Speech Recognition Error", "Error: network"),
    )
    # The reply for the abandoned turn no longer counts.
    assert transition(ctx, RelayReplied("late"), POLICY).context == ctx


def test_recognition_error_while_speaking_cancels_speech() -> None:
    result = transition(_speaking(), RecognitionError("audio-capture"), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert result.effects[0] == CancelSpeech()
    assert Notify("Speech Recognition Error", "Error: audio-capture") in result.effects


def test_recognition_error_drops_scheduled_recovery() -> None:
    result = transition(_error(), RecognitionError("not-allowed"), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert result.context.recovery_scheduled is False
    assert CancelRecovery() in result.effects
    assert transition(result.context, RecoveryDue(), POLICY).effects == ()


def test_relay_failure_after_stop_keeps_idle() -> None:
    ctx, _ = _run(_processing(), StopRequested())
    result = transition(ctx, RelayFailed("quota"), POLICY)
    assert result.context == ctx
    assert result.context.state is VoiceState.IDLE
    assert result.effects == (Notify("Connection Error", "quota"),)


def test_relay_failure_after_recovery_keeps_listening() -> None:
    ctx, _ = _run(_processing(), ResponseTimedOut(1), RecoveryDue())
    assert ctx.state is VoiceState.LISTENING
    result = transition(ctx, RelayFailed("quota"), POLICY)
    assert result.context == ctx
    assert not any(isinstance(e, ScheduleRecovery) for e in result.effects)


def test_recognition_end_restarts_in_conversation_mode() -> None:
    for ctx in (_listening(), _processing(), _error()):
        result = transition(ctx, RecognitionEnded(), POLICY)
        assert result.context.state is ctx.state
        assert result.effects == (StartRecognition(),)


def test_recognition_end_while_speaking_does_not_restart() -> None:
    result = transition(_speaking(), RecognitionEnded(), POLICY)
    assert result.effects == ()


def test_recognition_end_outside_conversation_mode_goes_idle() -> None:
    ctx = replace(_listening(), conversation_mode=False)
    result = transition(ctx, RecognitionEnded(), POLICY)
    assert result.context.state is VoiceState.IDLE
    assert result.effects == ()


def test_text_submission_opens_text_turn() -> None:
    result = transition(ConversationContext(), TextSubmitted(" Tell me about Revolt "), POLICY)
    assert result.context.state is VoiceState.PROCESSING
    assert SendTranscript(text="Tell me about Revolt", turn=1, kind="text") in result.effects


def test_text_submission_ignored_while_processing() -> None:
    ctx = _processing()
    assert transition(ctx, TextSubmitted("again"), POLICY).context == ctx


def test_new_turn_supersedes_timer_and_recovery() -> None:
    result = transition(_error(), _final("Second try"), POLICY)
    assert result.context.pending_turn == 2
    assert result.effects[:3] == (
        CancelRecovery(),
        CancelResponseTimer(),
        ArmResponseTimer(turn=2, seconds=10.0),
    )


def test_at_most_one_timer_armed_per_turn() -> None:
    ctx = ConversationContext()
    events = [
        StartRequested(),
        _final("one"),
        RelayReplied("r1"),
        SynthesisEnded(),
        _final("two"),
        ResponseTimedOut(2),
        RecoveryDue(),
        _final("three"),
        RelayReplied("r3"),
    ]
    armed = 0
    for event in events:
        result = transition(ctx, event, POLICY)
        for effect in result.effects:
            if isinstance(effect, ArmResponseTimer):
                assert armed == 0
                armed += 1
            elif isinstance(effect, CancelResponseTimer):
                armed = 0
        ctx = result.context
    assert armed == 0


def test_channel_lifecycle() -> None:
    ctx, _ = _run(ConversationContext(), ChannelConnecting())
    assert ctx.state is VoiceState.CONNECTING
    assert ctx.connected is False
    ctx, _ = _run(ctx, ChannelConnected())
    assert ctx.state is VoiceState.IDLE
    assert ctx.connected is True


def test_disconnect_clears_turn_and_mode() -> None:
    result = transition(_processing(), ChannelDisconnected(), POLICY)
    ctx = result.context
    assert ctx.state is VoiceState.IDLE
    assert ctx.connected is False
    assert ctx.conversation_mode is False
    assert ctx.pending_turn is None
    assert CancelResponseTimer() in result.effects


def test_disconnect_while_speaking_lets_speech_finish() -> None:
    result = transition(_speaking(), ChannelDisconnected(), POLICY)
    assert result.context.state is VoiceState.SPEAKING
    after = transition(result.context, SynthesisEnded(), POLICY)
    assert after.context.state is VoiceState.IDLE


def test_permission_denied() -> None:
    result = transition(ConversationContext(), PermissionResolved(False), POLICY)
    assert result.context.state is VoiceState.ERROR
    assert result.context.has_permission is False
    assert result.effects[-1] == Notify(
        "Microphone Access Required", "Please allow microphone access to use voice chat"
    )
    granted = transition(ConversationContext(), PermissionResolved(True), POLICY)
    assert granted.context.has_permission is True
    assert granted.context.state is VoiceState.IDLE


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(TypeError):
        transition(ConversationContext(), object(), POLICY)  # type: ignore[arg-type]


def test_full_conversation_round_trip() -> None:
    ctx, _ = _run(
        ConversationContext(),
        StartRequested(),
        _final("What's the range of the RV400?"),
        RelayReplied("About 150 km per charge."),
        SynthesisEnded(),
    )
    assert ctx.state is VoiceState.LISTENING
    assert ctx.conversation_mode is True
    assert [(m.type, m.content) for m in ctx.messages] == [
        ("user", "What's the range of the RV400?"),
        ("ai", "About 150 km per charge."),
    ]
    ids = {m.id for m in ctx.messages}
    assert len(ids) == 2
