"""
Unified event definitions for the session reducer.

Rules:
- Events describe facts that have occurred (user actions or channel events).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (status, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # User actions (UI shell)
    # ------------------------------------------------------------------
    START_SESSION = "START_SESSION"
    END_SESSION = "END_SESSION"
    TOGGLE_MICROPHONE = "TOGGLE_MICROPHONE"

    # ------------------------------------------------------------------
    # Voice channel
    # ------------------------------------------------------------------
    CALL_START = "CALL_START"
    CALL_END = "CALL_END"
    SPEECH_START = "SPEECH_START"
    SPEECH_END = "SPEECH_END"
    CHANNEL_MESSAGE = "CHANNEL_MESSAGE"
    CHANNEL_ERROR = "CHANNEL_ERROR"

    # ------------------------------------------------------------------
    # Command results (runtime feedback)
    # ------------------------------------------------------------------
    MUTE_CHANGED = "MUTE_CHANGED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    ERROR_WATCHDOG_TIMEOUT = "ERROR_WATCHDOG_TIMEOUT"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# User Actions
# =============================================================================

@dataclass(frozen=True)
class StartSession(Event):
    """User asked to start the lesson."""


@dataclass(frozen=True)
class EndSession(Event):
    """User asked to end the lesson."""


@dataclass(frozen=True)
class ToggleMicrophone(Event):
    """User pressed the microphone control."""


# =============================================================================
# Channel Events
# =============================================================================

@dataclass(frozen=True)
class CallStart(Event):
    """Provider reports the call is connected."""


@dataclass(frozen=True)
class CallEnd(Event):
    """Provider reports the call has ended (hang-up, fatal error, stop)."""


@dataclass(frozen=True)
class SpeechStart(Event):
    """Assistant speech playback started."""


@dataclass(frozen=True)
class SpeechEnd(Event):
    """Assistant speech playback ended."""


@dataclass(frozen=True)
class ChannelMessage(Event):
    """
    Raw provider message.

    Only finalized transcripts are admitted by the reducer; every other
    message type is ignored.
    """
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class ChannelError(Event):
    """Provider or transport reported an error. Non-fatal by itself."""
    reason: str
    details: dict[str, Any] | None = None


# =============================================================================
# Command Results
# =============================================================================

@dataclass(frozen=True)
class MuteChanged(Event):
    """Channel mute state after a toggle was applied."""
    muted: bool


# =============================================================================
# Timers
# =============================================================================

@dataclass(frozen=True)
class ErrorWatchdogTimeout(Event):
    """No call-end arrived within the watchdog window after an error."""
