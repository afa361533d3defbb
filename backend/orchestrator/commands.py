"""
Side-effect command definitions for the session reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from adapters.assistant.config_builder import AssistantConfig, AssistantOverrides
from orchestrator.enums.role import Role
from orchestrator.events import EventType


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Voice channel
    START_CALL = "START_CALL"
    STOP_CALL = "STOP_CALL"
    TOGGLE_MUTE = "TOGGLE_MUTE"

    # Transcript
    APPEND_TRANSCRIPT = "APPEND_TRANSCRIPT"

    # Completion
    RECORD_SESSION = "RECORD_SESSION"

    # Errors
    REPORT_ERROR = "REPORT_ERROR"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Channel Commands
# =============================================================================

@dataclass(frozen=True)
class StartCall(Command):
    """Non-blocking request to open the provider call."""
    config: AssistantConfig
    overrides: AssistantOverrides
    command_type: CommandType = CommandType.START_CALL


@dataclass(frozen=True)
class StopCall(Command):
    """Fire-and-forget request to hang up."""
    command_type: CommandType = CommandType.STOP_CALL


@dataclass(frozen=True)
class ToggleMute(Command):
    """
    Invert the channel's current mute state.

    The runtime reads the channel, applies the inverse, and feeds the
    result back as a MuteChanged event.
    """
    command_type: CommandType = CommandType.TOGGLE_MUTE


# =============================================================================
# Transcript
# =============================================================================

@dataclass(frozen=True)
class AppendTranscript(Command):
    """Append one finalized turn to the session transcript."""
    role: Role
    content: str
    command_type: CommandType = CommandType.APPEND_TRANSCRIPT


# =============================================================================
# Completion
# =============================================================================

@dataclass(frozen=True)
class RecordSession(Command):
    """
    Record that the session happened.

    Emitted exactly once per session instance, on entry to FINISHED.
    """
    companion_id: str
    command_type: CommandType = CommandType.RECORD_SESSION


# =============================================================================
# Errors
# =============================================================================

@dataclass(frozen=True)
class ReportError(Command):
    """Forward a channel error to the error-tracking collaborator."""
    reason: str
    details: dict[str, Any] | None = None
    command_type: CommandType = CommandType.REPORT_ERROR


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Start (or replace) a timer that re-enters the runtime as an event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Cancel a timer if it is pending. Idempotent."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Structured reducer decision log."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
