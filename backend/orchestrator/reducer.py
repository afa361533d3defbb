"""
Pure session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (status, event) pair is handled or explicitly ignored (logged).
- Forward-only: INACTIVE -> CONNECTING -> ACTIVE -> FINISHED, never back.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from adapters.assistant.config_builder import build, build_overrides
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
from orchestrator.enums.call_status import CallStatus
from orchestrator.enums.role import Role
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
from orchestrator.state_dataclass import SessionState


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_ERROR_WATCHDOG = "channel_error_watchdog"


# =============================================================================
# Transcript message shape (provider contract)
# =============================================================================

MESSAGE_TYPE_TRANSCRIPT = "transcript"
TRANSCRIPT_TYPE_FINAL = "final"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "status": state.status.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "flags": {
                "is_speaking": state.is_speaking,
                "is_muted": state.is_muted,
            },
            "companion_id": state.context.companion_id,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _state_changed(
    old: SessionState, new: SessionState, event: Event, source: str
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_status": old.status.value,
            "to_status": new.status.value,
            "source": source,
        },
    )


def _enter_finished(
    state: SessionState,
    event: Event,
    *,
    source: str,
    stop_call: bool,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Single entry point into FINISHED.

    Every terminal trigger (user end, call-end, watchdog) converges here,
    so RecordSession is emitted on entry and at most once per instance.
    """
    if state.status is CallStatus.FINISHED:
        return _ignore(state, event, "already_finished")

    new_state = replace(
        state,
        status=CallStatus.FINISHED,
        completion_recorded=True,
        finish_reason=source,
        error_watchdog_armed=False,
    )

    cmds: list[Command] = []

    if stop_call:
        cmds.append(StopCall())

    if state.error_watchdog_armed:
        cmds.append(CancelTimer(timer_id=TIMER_ERROR_WATCHDOG))

    if not state.completion_recorded:
        cmds.append(RecordSession(companion_id=state.context.companion_id))

    cmds.append(_state_changed(state, new_state, event, source))

    return new_state, _logs_last(tuple(cmds))


def _disarm_watchdog(state: SessionState) -> tuple[SessionState, tuple[Command, ...]]:
    if not state.error_watchdog_armed:
        return state, ()
    return (
        replace(state, error_watchdog_armed=False),
        (CancelTimer(timer_id=TIMER_ERROR_WATCHDOG),),
    )


def _parse_final_transcript(
    payload: Any,
) -> tuple[Role, str] | None:
    """
    Extract (role, text) from a finalized transcript message.

    Returns None for any other message type, interim transcripts,
    or malformed payloads.
    """
    if not isinstance(payload, Mapping):
        return None
    if payload.get("type") != MESSAGE_TYPE_TRANSCRIPT:
        return None
    if payload.get("transcriptType") != TRANSCRIPT_TYPE_FINAL:
        return None

    text = payload.get("transcript")
    if not isinstance(text, str):
        return None

    try:
        role = Role(payload.get("role"))
    except ValueError:
        return None

    return role, text


# =============================================================================
# Reducer
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the tutor session state machine.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects
    """

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    if isinstance(event, StartSession):
        if state.status is CallStatus.FINISHED:
            return _ignore(state, event, "finished_instance_cannot_restart")
        if state.status is not CallStatus.INACTIVE:
            return _ignore(state, event, "already_started")

        ctx = state.context
        new_state = replace(state, status=CallStatus.CONNECTING)
        return new_state, _logs_last((
            StartCall(
                config=build(ctx.voice_id, ctx.style),
                overrides=build_overrides(
                    subject=ctx.subject,
                    topic=ctx.topic,
                    style=ctx.style,
                ),
            ),
            _state_changed(state, new_state, event, "user_start"),
        ))

    if isinstance(event, EndSession):
        if state.status is CallStatus.INACTIVE:
            return _ignore(state, event, "not_started")
        return _enter_finished(state, event, source="user_end", stop_call=True)

    if isinstance(event, ToggleMicrophone):
        if state.status is not CallStatus.ACTIVE:
            return _ignore(state, event, "mic_toggle_requires_active")
        return state, (
            ToggleMute(),
            _log(state, event, "toggle_mute"),
        )

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------

    if isinstance(event, CallStart):
        if state.status is not CallStatus.CONNECTING:
            return _ignore(state, event, "call_start_requires_connecting")

        disarmed, timer_cmds = _disarm_watchdog(state)
        new_state = replace(disarmed, status=CallStatus.ACTIVE)
        return new_state, _logs_last(
            timer_cmds + (_state_changed(state, new_state, event, "call_start"),)
        )

    if isinstance(event, CallEnd):
        return _enter_finished(state, event, source="call_end", stop_call=False)

    # ------------------------------------------------------------------
    # Speaking flag (any status, receipt order, no debounce)
    # ------------------------------------------------------------------

    if isinstance(event, SpeechStart):
        new_state = replace(state, is_speaking=True)
        return new_state, (_log(new_state, event, "speaking_started"),)

    if isinstance(event, SpeechEnd):
        new_state = replace(state, is_speaking=False)
        return new_state, (_log(new_state, event, "speaking_stopped"),)

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    if isinstance(event, ChannelMessage):
        parsed = _parse_final_transcript(event.payload)
        if parsed is None:
            return _ignore(state, event, "not_final_transcript")

        role, text = parsed
        new_state = replace(state, transcript_count=state.transcript_count + 1)
        return new_state, (
            AppendTranscript(role=role, content=text),
            _log(
                new_state,
                event,
                "transcript_appended",
                {"role": role.value, "content_len": len(text)},
            ),
        )

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    if isinstance(event, ChannelError):
        new_state = replace(state, last_error=event.reason)
        cmds: list[Command] = [
            ReportError(reason=event.reason, details=event.details),
        ]

        arm = (
            state.status is not CallStatus.FINISHED
            and state.error_watchdog_ms > 0
            and not state.error_watchdog_armed
        )
        if arm:
            new_state = replace(new_state, error_watchdog_armed=True)
            cmds.append(
                StartTimer(
                    timer_id=TIMER_ERROR_WATCHDOG,
                    duration_ms=state.error_watchdog_ms,
                    timeout_event_type=EventType.ERROR_WATCHDOG_TIMEOUT,
                )
            )

        cmds.append(
            _log(
                new_state,
                event,
                "channel_error",
                {"reason": event.reason, "watchdog_armed": arm},
            )
        )
        return new_state, _logs_last(tuple(cmds))

    if isinstance(event, ErrorWatchdogTimeout):
        if not state.error_watchdog_armed:
            return _ignore(state, event, "watchdog_not_armed")
        return _enter_finished(
            state, event, source="error_watchdog", stop_call=True
        )

    # ------------------------------------------------------------------
    # Command results
    # ------------------------------------------------------------------

    if isinstance(event, MuteChanged):
        new_state = replace(state, is_muted=event.muted)
        return new_state, (
            _log(new_state, event, "mute_changed", {"muted": event.muted}),
        )

    return _ignore(state, event, "unhandled_event")
