# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from context.serialization import build_snapshot, serialize_snapshot
from context.transcript import TranscriptAccumulator, TranscriptEntry
from orchestrator.enums.call_status import CallStatus
from orchestrator.enums.role import Role
from orchestrator.state_dataclass import SessionState
from session.session_context import SessionContext, SessionContextError


def test_from_payload_accepts_client_camel_case():
    ctx = SessionContext.from_payload(
        {
            "companionId": "c1",
            "subject": "science",
            "topic": "photosynthesis",
            "style": "formal",
            "voice": "male",
            "name": "Neura the Explorer",
            "userDisplayName": "Ada",
            "userAvatarUrl": "https://img.example/ada.png",
        },
        user_id="u1",
    )

    assert ctx.companion_id == "c1"
    assert ctx.voice_id == "male"
    assert ctx.companion_name == "Neura the Explorer"
    assert ctx.user_display_name == "Ada"
    assert ctx.user_avatar_url == "https://img.example/ada.png"
    assert ctx.user_id == "u1"


def test_from_payload_rejects_missing_fields():
    with pytest.raises(SessionContextError) as exc:
        SessionContext.from_payload({"companion_id": "c1", "subject": "math"})

    assert "topic" in str(exc.value)
    assert "voice_id" in str(exc.value)


def test_snapshot_serialization_labels_lines():
    ctx = SessionContext(
        companion_id="c1",
        subject="math",
        topic="fractions",
        style="casual",
        voice_id="female",
        user_display_name="Ada",
        companion_name="Neura. the Brainy",
    )
    transcript = TranscriptAccumulator()
    transcript.append(TranscriptEntry(role=Role.USER, content="hi"))
    transcript.append(TranscriptEntry(role=Role.ASSISTANT, content="hello"))

    snapshot = build_snapshot(
        session_id="s1",
        state=SessionState(context=ctx, status=CallStatus.ACTIVE, is_speaking=True),
        transcript=transcript.to_display_list(),
    )
    msg = serialize_snapshot(
        snapshot,
        companion_name=ctx.companion_name,
        user_display_name=ctx.user_display_name,
    )

    assert msg == {
        "type": "SESSION_STATE",
        "session_id": "s1",
        "status": "ACTIVE",
        "is_speaking": True,
        "is_muted": False,
        "finish_reason": None,
        "transcript": [
            {"role": "assistant", "content": "hello", "label": "Neura"},
            {"role": "user", "content": "hi", "label": "Ada"},
        ],
    }
