"""
Authoritative session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- The transcript itself lives in the session-owned TranscriptAccumulator;
  the reducer only counts what it admitted.
"""
from __future__ import annotations

from dataclasses import dataclass

from constants import CHANNEL_ERROR_WATCHDOG_MS
from orchestrator.enums.call_status import CallStatus
from session.session_context import SessionContext


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all state owned by one session instance."""

    context: SessionContext

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    status: CallStatus = CallStatus.INACTIVE

    # ------------------------------------------------------------------
    # Ephemeral flags (independent of status)
    # ------------------------------------------------------------------
    is_speaking: bool = False
    is_muted: bool = False

    # ------------------------------------------------------------------
    # Transcript bookkeeping
    # ------------------------------------------------------------------
    transcript_count: int = 0

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------
    # Set on entry to FINISHED together with the RecordSession command.
    completion_recorded: bool = False

    # What drove the transition into FINISHED
    finish_reason: str | None = None

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
    error_watchdog_armed: bool = False

    # 0 disables the watchdog
    error_watchdog_ms: int = CHANNEL_ERROR_WATCHDOG_MS
