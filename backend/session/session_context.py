"""
Session-scoped immutable input.

Supplied once when a tutor session is opened; never mutated afterwards.
A new lesson after FINISHED builds a new instance from a context, it does
not edit this one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


class SessionContextError(ValueError):
    """Raised when a client-supplied session context is incomplete."""


_REQUIRED = ("companion_id", "subject", "topic", "style", "voice_id")


@dataclass(frozen=True)
class SessionContext:
    """Identity and lesson parameters for one tutor session."""

    companion_id: str
    subject: str
    topic: str
    style: str
    voice_id: str
    user_display_name: str = ""
    user_avatar_url: str = ""

    # Not needed by the state machine; forwarded to collaborators.
    user_id: str | None = None
    companion_name: str = ""

    @staticmethod
    def from_payload(
        data: Mapping[str, Any],
        *,
        user_id: str | None = None,
    ) -> SessionContext:
        """
        Build a context from a client JSON payload.

        Accepts both snake_case and the camelCase keys the web client sends.

        Raises:
            SessionContextError if a required field is missing or empty.
        """
        def pick(snake: str, camel: str) -> str:
            value = data.get(snake, data.get(camel, ""))
            return "" if value is None else str(value)

        values = {
            "companion_id": pick("companion_id", "companionId"),
            "subject": pick("subject", "subject"),
            "topic": pick("topic", "topic"),
            "style": pick("style", "style"),
            "voice_id": pick("voice_id", "voiceId") or pick("voice", "voice"),
        }

        missing = [k for k in _REQUIRED if not values[k]]
        if missing:
            raise SessionContextError(
                f"session context missing fields: {', '.join(missing)}"
            )

        return SessionContext(
            **values,
            user_display_name=pick("user_display_name", "userDisplayName"),
            user_avatar_url=pick("user_avatar_url", "userAvatarUrl"),
            user_id=user_id,
            companion_name=pick("companion_name", "name"),
        )
