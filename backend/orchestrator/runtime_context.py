"""
Runtime execution context.

Provides Runtime with live access to the session-owned imperative resources
needed for command execution (channel, transcript, collaborators).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero session logic
- Zero state mutation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from observability.logger import log_event

if TYPE_CHECKING:
    from adapters.channel.base import VoiceChannel
    from context.transcript import TranscriptAccumulator


# ---------------------------------------------------------------------
# Collaborator Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class SessionHistoryProtocol(Protocol):
    """
    Completion collaborator.

    Called at most once per session instance; may raise, the runtime
    logs and moves on.
    """

    async def record_session(
        self,
        *,
        companion_id: str,
        user_id: str | None,
    ) -> None: ...


@runtime_checkable
class ErrorReporterProtocol(Protocol):
    """Error-tracking collaborator for channel errors."""

    def report(
        self,
        *,
        session_id: str,
        reason: str,
        details: dict[str, Any] | None,
    ) -> None: ...


class LogErrorReporter:
    """Default reporter: one structured log line per channel error."""

    def report(
        self,
        *,
        session_id: str,
        reason: str,
        details: dict[str, Any] | None,
    ) -> None:
        log_event({
            "event_type": "CHANNEL_ERROR_REPORTED",
            "session_id": session_id,
            "reason": reason,
            "details": details or {},
        })


# ---------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------

@dataclass
class RuntimeExecutionContext:
    """Everything Runtime needs to execute commands for one session."""

    session_id: str
    channel: VoiceChannel
    transcript: TranscriptAccumulator
    history: SessionHistoryProtocol
    error_reporter: ErrorReporterProtocol
    user_id: str | None = None
