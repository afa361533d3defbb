"""
Voice session container.

- Owns one session instance: context, channel, transcript, runtime
- Owned by SessionGateway; replaced (never reset) after FINISHED
- NOT a state machine
- Contains no session logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from adapters.channel.base import Subscription, VoiceChannel
from context.transcript import TranscriptAccumulator
from orchestrator.runtime import Runtime
from session.session_context import SessionContext


@dataclass
class VoiceSession:
    """Mutable container for a single tutor session instance."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    context: SessionContext
    channel: VoiceChannel
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Session-owned resources
    # ------------------------------------------------------------------

    transcript: TranscriptAccumulator = field(init=False)
    runtime: Runtime | None = None

    # Gateway-owned channel subscriptions (assistant audio egress)
    subscriptions: list[Subscription] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.transcript = TranscriptAccumulator()

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_runtime(self, runtime: Runtime) -> None:
        """Attach the runtime executor. Called once during bootstrap."""
        self.runtime = runtime

    def release_subscriptions(self) -> None:
        for sub in self.subscriptions:
            sub.release()
        self.subscriptions.clear()

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session instance."""
        return {
            "session_id": self.session_id,
            "companion_id": self.context.companion_id,
            "status": (
                self.runtime.state.status.value if self.runtime is not None else None
            ),
        }
