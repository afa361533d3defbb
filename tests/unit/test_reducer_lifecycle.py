# pylint: disable=missing-module-docstring,missing-function-docstring
from typing import Any

from orchestrator.reducer import reduce, TIMER_ERROR_WATCHDOG
from orchestrator.state_dataclass import SessionState
from orchestrator.enums.call_status import CallStatus
from orchestrator.enums.role import Role
from session.session_context import SessionContext

from orchestrator.events import (
    CallEnd,
    CallStart,
    ChannelError,
    ChannelMessage,
    EndSession,
    ErrorWatchdogTimeout,
    Event,
    EventType,
    MuteChanged,
    SpeechEnd,
    SpeechStart,
    StartSession,
    ToggleMicrophone,
)

from orchestrator.commands import (
    AppendTranscript,
    CancelTimer,
    Command,
    LogEvent,
    RecordSession,
    ReportError,
    StartCall,
    StartTimer,
    StopCall,
    ToggleMute,
)


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def start_session(ts_ms: int = 0) -> StartSession:
    return StartSession(ts_ms=ts_ms, event_type=EventType.START_SESSION)


def end_session(ts_ms: int = 0) -> EndSession:
    return EndSession(ts_ms=ts_ms, event_type=EventType.END_SESSION)


def toggle_mic(ts_ms: int = 0) -> ToggleMicrophone:
    return ToggleMicrophone(ts_ms=ts_ms, event_type=EventType.TOGGLE_MICROPHONE)


def call_start(ts_ms: int = 0) -> CallStart:
    return CallStart(ts_ms=ts_ms, event_type=EventType.CALL_START)


def call_end(ts_ms: int = 0) -> CallEnd:
    return CallEnd(ts_ms=ts_ms, event_type=EventType.CALL_END)


def speech_start() -> SpeechStart:
    return SpeechStart(ts_ms=0, event_type=EventType.SPEECH_START)


def speech_end() -> SpeechEnd:
    return SpeechEnd(ts_ms=0, event_type=EventType.SPEECH_END)


def message(payload: dict[str, Any]) -> ChannelMessage:
    return ChannelMessage(ts_ms=0, event_type=EventType.CHANNEL_MESSAGE, payload=payload)


def final(role: str, text: str) -> ChannelMessage:
    return message({
        "type": "transcript",
        "transcriptType": "final",
        "role": role,
        "transcript": text,
    })


def channel_error(reason: str = "socket reset") -> ChannelError:
    return ChannelError(ts_ms=0, event_type=EventType.CHANNEL_ERROR, reason=reason)


def watchdog_timeout() -> ErrorWatchdogTimeout:
    return ErrorWatchdogTimeout(ts_ms=0, event_type=EventType.ERROR_WATCHDOG_TIMEOUT)


def mute_changed(muted: bool) -> MuteChanged:
    return MuteChanged(ts_ms=0, event_type=EventType.MUTE_CHANGED, muted=muted)


def make_state(**overrides: Any) -> SessionState:
    context = SessionContext(
        companion_id="c1",
        subject="math",
        topic="fractions",
        style="casual",
        voice_id="female",
    )
    return SessionState(context=context, **overrides)


def run(state: SessionState, *events: Event) -> tuple[SessionState, list[Command]]:
    commands: list[Command] = []
    for event in events:
        state, cmds = reduce(state, event)
        commands.extend(cmds)
    return state, commands


def non_logs(commands: list[Command] | tuple[Command, ...]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def decisions(commands: list[Command] | tuple[Command, ...]) -> list[str]:
    return [c.event["decision"] for c in commands if isinstance(c, LogEvent)]


# ---------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------

def test_start_moves_to_connecting_and_starts_call():
    state, commands = reduce(make_state(), start_session())

    assert state.status is CallStatus.CONNECTING

    starts = [c for c in commands if isinstance(c, StartCall)]
    assert len(starts) == 1
    assert starts[0].config.voice.voice_id == "ZIlrSGI4jZqobxRKprJz"
    assert dict(starts[0].overrides.variable_values) == {
        "subject": "math",
        "topic": "fractions",
        "style": "casual",
    }
    assert starts[0].overrides.client_messages == ("transcript",)
    assert starts[0].overrides.server_messages == ()


def test_second_start_is_ignored():
    state, _ = reduce(make_state(), start_session())
    state2, commands = reduce(state, start_session())

    assert state2 == state
    assert non_logs(commands) == []
    assert decisions(commands) == ["ignore"]


def test_finished_instance_never_restarts():
    state, _ = run(make_state(), start_session(), call_start(), call_end())
    state2, commands = reduce(state, start_session())

    assert state2.status is CallStatus.FINISHED
    assert non_logs(commands) == []
    assert commands[0].event["details"]["reason"] == "finished_instance_cannot_restart"


# ---------------------------------------------------------------------
# Call lifecycle
# ---------------------------------------------------------------------

def test_call_start_activates_only_from_connecting():
    state, _ = reduce(make_state(), call_start())
    assert state.status is CallStatus.INACTIVE

    state, _ = run(make_state(), start_session(), call_start())
    assert state.status is CallStatus.ACTIVE


def test_call_end_finishes_and_records_once():
    state, commands = run(make_state(), start_session(), call_start(), call_end())

    assert state.status is CallStatus.FINISHED
    assert state.finish_reason == "call_end"
    records = [c for c in commands if isinstance(c, RecordSession)]
    assert records == [RecordSession(companion_id="c1")]
    # Provider already hung up
    assert not any(isinstance(c, StopCall) for c in commands)


def test_user_end_then_call_end_records_once():
    state, commands = run(
        make_state(), start_session(), call_start(), end_session(), call_end()
    )

    assert state.status is CallStatus.FINISHED
    assert state.finish_reason == "user_end"
    assert sum(isinstance(c, RecordSession) for c in commands) == 1
    assert sum(isinstance(c, StopCall) for c in commands) == 1


def test_end_during_connecting_finishes():
    state, commands = run(make_state(), start_session(), end_session())

    assert state.status is CallStatus.FINISHED
    assert StopCall() in commands
    assert RecordSession(companion_id="c1") in commands


def test_end_before_start_is_ignored():
    state, commands = reduce(make_state(), end_session())

    assert state.status is CallStatus.INACTIVE
    assert non_logs(commands) == []
    assert commands[0].event["details"]["reason"] == "not_started"

    # The instance can still be started afterwards
    state, _ = reduce(state, start_session())
    assert state.status is CallStatus.CONNECTING


def test_status_never_moves_backwards():
    order = [CallStatus.INACTIVE, CallStatus.CONNECTING, CallStatus.ACTIVE, CallStatus.FINISHED]
    events = [
        call_start(), start_session(), call_start(), start_session(), call_start(),
        end_session(), start_session(), call_start(), call_end(),
    ]

    state = make_state()
    for event in events:
        prev = order.index(state.status)
        state, _ = reduce(state, event)
        assert order.index(state.status) >= prev


def test_finished_state_changed_log_is_last():
    _, commands = reduce(make_state(status=CallStatus.ACTIVE), end_session())

    assert isinstance(commands[-1], LogEvent)
    assert commands[-1].event["decision"] == "state_changed"
    assert commands[-1].event["details"] == {
        "from_status": "ACTIVE",
        "to_status": "FINISHED",
        "source": "user_end",
    }


# ---------------------------------------------------------------------
# Speaking flag
# ---------------------------------------------------------------------

def test_speaking_flag_follows_events_in_order():
    state, _ = run(make_state(), speech_start(), speech_end(), speech_start())
    assert state.is_speaking is True

    state, _ = run(state, speech_end())
    assert state.is_speaking is False
    assert state.status is CallStatus.INACTIVE


# ---------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------

def test_final_transcripts_are_appended_in_order():
    state, commands = run(
        make_state(status=CallStatus.ACTIVE),
        final("user", "hi"),
        final("assistant", "hello"),
    )

    appends = [c for c in commands if isinstance(c, AppendTranscript)]
    assert appends == [
        AppendTranscript(role=Role.USER, content="hi"),
        AppendTranscript(role=Role.ASSISTANT, content="hello"),
    ]
    assert state.transcript_count == 2


def test_interim_and_other_messages_are_discarded():
    state, commands = run(
        make_state(status=CallStatus.ACTIVE),
        message({"type": "transcript", "transcriptType": "partial", "role": "user", "transcript": "h"}),
        message({"type": "function-call"}),
        message({"type": "transcript", "transcriptType": "final", "role": "narrator", "transcript": "x"}),
        message({"type": "transcript", "transcriptType": "final", "role": "user"}),
    )

    assert non_logs(commands) == []
    assert state.transcript_count == 0


def test_final_transcript_after_finish_is_still_kept():
    state, commands = run(
        make_state(status=CallStatus.FINISHED, completion_recorded=True),
        final("assistant", "goodbye"),
    )

    assert AppendTranscript(role=Role.ASSISTANT, content="goodbye") in commands
    assert state.transcript_count == 1


# ---------------------------------------------------------------------
# Microphone
# ---------------------------------------------------------------------

def test_toggle_requires_active():
    for status in (CallStatus.INACTIVE, CallStatus.CONNECTING, CallStatus.FINISHED):
        _, commands = reduce(make_state(status=status), toggle_mic())
        assert non_logs(commands) == []


def test_toggle_in_active_emits_toggle_mute():
    state, commands = reduce(make_state(status=CallStatus.ACTIVE), toggle_mic())

    assert non_logs(commands) == [ToggleMute()]
    assert state.is_muted is False  # mirrored once the channel answers

    state, _ = reduce(state, mute_changed(True))
    assert state.is_muted is True


# ---------------------------------------------------------------------
# Errors and watchdog
# ---------------------------------------------------------------------

def test_error_reports_and_arms_watchdog_without_status_change():
    state, commands = reduce(make_state(status=CallStatus.ACTIVE), channel_error())

    assert state.status is CallStatus.ACTIVE
    assert state.last_error == "socket reset"
    assert state.error_watchdog_armed is True
    assert ReportError(reason="socket reset") in commands
    timers = [c for c in commands if isinstance(c, StartTimer)]
    assert len(timers) == 1
    assert timers[0].timer_id == TIMER_ERROR_WATCHDOG
    assert timers[0].duration_ms == 15_000
    assert timers[0].timeout_event_type is EventType.ERROR_WATCHDOG_TIMEOUT


def test_watchdog_disabled_with_zero():
    state, commands = reduce(
        make_state(status=CallStatus.ACTIVE, error_watchdog_ms=0), channel_error()
    )

    assert state.error_watchdog_armed is False
    assert not any(isinstance(c, StartTimer) for c in commands)
    assert any(isinstance(c, ReportError) for c in commands)


def test_error_then_call_end_cancels_watchdog():
    state, commands = run(
        make_state(status=CallStatus.ACTIVE), channel_error(), call_end()
    )

    assert state.status is CallStatus.FINISHED
    assert CancelTimer(timer_id=TIMER_ERROR_WATCHDOG) in commands
    assert sum(isinstance(c, RecordSession) for c in commands) == 1


def test_watchdog_expiry_finishes_and_records():
    state, commands = run(
        make_state(status=CallStatus.CONNECTING), channel_error(), watchdog_timeout()
    )

    assert state.status is CallStatus.FINISHED
    assert state.finish_reason == "error_watchdog"
    assert StopCall() in commands
    assert RecordSession(companion_id="c1") in commands


def test_call_start_after_error_disarms_watchdog():
    state, commands = run(
        make_state(status=CallStatus.CONNECTING), channel_error(), call_start()
    )

    assert state.status is CallStatus.ACTIVE
    assert state.error_watchdog_armed is False
    assert CancelTimer(timer_id=TIMER_ERROR_WATCHDOG) in commands

    state, commands = reduce(state, watchdog_timeout())
    assert state.status is CallStatus.ACTIVE
    assert non_logs(commands) == []


def test_error_after_finish_does_not_arm():
    state, commands = reduce(
        make_state(status=CallStatus.FINISHED, completion_recorded=True), channel_error()
    )

    assert state.error_watchdog_armed is False
    assert not any(isinstance(c, StartTimer) for c in commands)
