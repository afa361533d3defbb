"""
Session snapshot serialization for the UI shell.

Responsibilities:
- Freeze the observable session state (status, flags, transcript) into a
  single immutable snapshot
- Convert a snapshot into the client JSON message

Non-responsibilities:
- No transcript filtering
- No logging
- No session decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from context.transcript import TranscriptEntry, TranscriptView, display_label
from orchestrator.enums.call_status import CallStatus
from orchestrator.state_dataclass import SessionState


@dataclass(frozen=True)
class SessionSnapshot:
    """What the UI may observe about one session instance."""
    session_id: str
    status: CallStatus
    is_speaking: bool
    is_muted: bool
    transcript: tuple[TranscriptEntry, ...]  # newest first
    finish_reason: str | None = None


def build_snapshot(
    *,
    session_id: str,
    state: SessionState,
    transcript: TranscriptView,
) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        status=state.status,
        is_speaking=state.is_speaking,
        is_muted=state.is_muted,
        transcript=tuple(transcript),
        finish_reason=state.finish_reason,
    )


def serialize_snapshot(
    snapshot: SessionSnapshot,
    *,
    companion_name: str,
    user_display_name: str,
) -> dict[str, Any]:
    """
    Serialize a snapshot into the SESSION_STATE client message.

    Output format:
    {
        "type": "SESSION_STATE",
        "session_id": "...",
        "status": "ACTIVE",
        "is_speaking": false,
        "is_muted": false,
        "finish_reason": null,
        "transcript": [
            {"role": "assistant", "content": "...", "label": "Neura"},
            {"role": "user", "content": "...", "label": "Ada"},
        ]
    }

    Transcript lines are newest first.
    """
    return {
        "type": "SESSION_STATE",
        "session_id": snapshot.session_id,
        "status": snapshot.status.value,
        "is_speaking": snapshot.is_speaking,
        "is_muted": snapshot.is_muted,
        "finish_reason": snapshot.finish_reason,
        "transcript": [
            {
                **entry.to_dict(),
                "label": display_label(
                    entry,
                    companion_name=companion_name,
                    user_display_name=user_display_name,
                ),
            }
            for entry in snapshot.transcript
        ],
    }
