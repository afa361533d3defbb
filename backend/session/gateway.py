"""
Session gateway.

Responsibilities:
- Owns the VoiceSession instance for one client websocket
- Routes inbound JSON control messages -> runtime UI actions
- Routes inbound binary mic frames -> voice channel
- Detects sequence gaps and logs them
- Publishes SESSION_STATE snapshots and assistant audio to the outbound
  queue drained by the websocket route
- Replaces a FINISHED instance when the user starts a new lesson

NOT responsible for:
- Session state decisions (reducer)
- Command execution (runtime)
- Provider protocol (channel adapter)
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Union
from uuid import uuid4

from adapters.channel import base as channel_events
from adapters.channel.base import VoiceChannel
from context.serialization import SessionSnapshot, serialize_snapshot
from orchestrator.enums.call_status import CallStatus
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import (
    ErrorReporterProtocol,
    LogErrorReporter,
    RuntimeExecutionContext,
    SessionHistoryProtocol,
)
from orchestrator.state_dataclass import SessionState
from protocol.binary import (
    BinaryProtocolError,
    check_sequence_gap,
    decode_c2s_frame,
    encode_s2c_frame,
    next_seq,
)
from session.session_context import SessionContext, SessionContextError
from session.voice_session import VoiceSession

from constants import (
    AUDIO_CHANNELS,
    AUDIO_FRAME_MS,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLE_WIDTH_BYTES,
)
from observability.logger import log_event

if TYPE_CHECKING:
    from config import AppConfig


# session_id -> fresh, unstarted channel
ChannelFactory = Callable[[str], VoiceChannel]

OutboundMessage = Union[dict[str, Any], bytes]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _error_msg(code: str, message: str) -> dict[str, Any]:
    return {"type": "ERROR", "code": code, "message": message}


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client in reply to this call.
        Asynchronous pushes (state changes, audio) go through
        SessionGateway.outbound instead.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == one client websocket.

    Holds at most one live session instance at a time. A new lesson after
    FINISHED swaps in a fresh instance built from the same context.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        channel_factory: ChannelFactory,
        history: SessionHistoryProtocol,
        error_reporter: ErrorReporterProtocol | None = None,
        user_id: str | None = None,
    ) -> None:
        self._config = config
        self._channel_factory = channel_factory
        self._history = history
        self._error_reporter = error_reporter or LogErrorReporter()
        self._user_id = user_id

        self.session: VoiceSession | None = None
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

        self._context: SessionContext | None = None
        self._last_ingest_seq: int | None = None
        self._last_egress_seq: int | None = None

    # ------------------------------------------------------------------
    # Websocket lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> GatewayResult:
        """Called when the client websocket is established."""
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            "user_id": self._user_id,
        })

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "audio_format": {
                "sample_rate": AUDIO_SAMPLE_RATE_HZ,
                "sample_width": AUDIO_SAMPLE_WIDTH_BYTES,
                "channels": AUDIO_CHANNELS,
                "frame_duration_ms": AUDIO_FRAME_MS,
            },
        }
        return GatewayResult(outbound_json=(init_msg,))

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """
        Called when the client websocket goes away.

        A live call is ended (and recorded) before the instance is torn down.
        """
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        session_id = self.session.session_id
        await self._close_instance()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": session_id,
            "reason": reason,
        })
        return GatewayResult()

    # ------------------------------------------------------------------
    # Inbound JSON
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON control messages."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self._session_id(),
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if not isinstance(data, dict):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self._session_id(),
                "error": "message is not an object",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        msg_type = data.get("type")

        if msg_type == "SESSION_OPEN":
            return await self._on_session_open(data)

        if self.session is None or self.session.runtime is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "msg_type": msg_type,
            })
            return GatewayResult(outbound_json=(
                _error_msg("no_session", "send SESSION_OPEN first"),
            ))

        if msg_type == "START_SESSION":
            await self._on_start_session()
        elif msg_type == "END_SESSION":
            await self.session.runtime.end_session()
        elif msg_type == "TOGGLE_MICROPHONE":
            await self.session.runtime.toggle_microphone()
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": msg_type,
                "session_id": self.session.session_id,
            })

        return GatewayResult()

    async def _on_session_open(self, data: dict[str, Any]) -> GatewayResult:
        if self.session is not None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_ALREADY_OPEN",
                "session_id": self.session.session_id,
            })
            return GatewayResult(outbound_json=(
                _error_msg("session_already_open", "session context is immutable"),
            ))

        raw_context = data.get("context")
        try:
            context = SessionContext.from_payload(
                raw_context if isinstance(raw_context, dict) else {},
                user_id=self._user_id,
            )
        except SessionContextError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_CONTEXT_INVALID",
                "error": str(e),
            })
            return GatewayResult(outbound_json=(
                _error_msg("invalid_context", str(e)),
            ))

        self._context = context
        session = self._open_instance(context)
        assert session.runtime is not None

        return GatewayResult(outbound_json=(self._serialize(session.runtime.snapshot()),))

    async def _on_start_session(self) -> None:
        session = self.session
        assert session is not None and session.runtime is not None

        if session.runtime.state.status is CallStatus.FINISHED:
            # A finished instance never restarts: replace it.
            assert self._context is not None
            await self._close_instance()
            session = self._open_instance(self._context)
            assert session.runtime is not None
            await self._publish_state(session.runtime.snapshot())

        await session.runtime.start_session()

    # ------------------------------------------------------------------
    # Inbound binary (mic audio)
    # ------------------------------------------------------------------

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        """
        Handle an inbound binary mic frame.

        - Decode + validate
        - Detect sequence gaps
        - Forward to the channel while the call is ACTIVE
        """
        if self.session is None or self.session.runtime is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BINARY_WITHOUT_SESSION",
                "payload_len": len(payload),
            })
            return GatewayResult()

        try:
            frame = decode_c2s_frame(payload, ts_ms=_now_ms())
        except BinaryProtocolError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return GatewayResult()

        gap_result = check_sequence_gap(
            last_seq=self._last_ingest_seq,
            current_seq=frame.sequence_num,
        )
        if gap_result.gap:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SEQ_GAP_DETECTED",
                "session_id": self.session.session_id,
                "expected": gap_result.expected,
                "actual": gap_result.actual,
                "gap_size": gap_result.gap_size,
            })
        self._last_ingest_seq = frame.sequence_num

        if self.session.runtime.state.status is not CallStatus.ACTIVE:
            return GatewayResult()

        await self.session.channel.send_audio(frame.pcm_bytes)
        return GatewayResult()

    # ------------------------------------------------------------------
    # Instance management
    # ------------------------------------------------------------------

    def _open_instance(self, context: SessionContext) -> VoiceSession:
        session_id = _new_session_id()
        channel = self._channel_factory(session_id)

        session = VoiceSession(
            session_id=session_id,
            context=context,
            channel=channel,
        )

        runtime = Runtime(
            initial_state=SessionState(
                context=context,
                error_watchdog_ms=self._config.channel_error_watchdog_ms,
            ),
            context=RuntimeExecutionContext(
                session_id=session_id,
                channel=channel,
                transcript=session.transcript,
                history=self._history,
                error_reporter=self._error_reporter,
                user_id=context.user_id,
            ),
            on_change=self._publish_state,
        )
        session.attach_runtime(runtime)

        runtime.open()
        session.subscriptions.append(
            channel.on(channel_events.AUDIO, self._on_assistant_audio)
        )

        self.session = session
        self._last_ingest_seq = None

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_OPENED",
            **session.log_context(),
        })
        return session

    async def _close_instance(self) -> None:
        session = self.session
        if session is None:
            return

        # Detach before the first await so a cancelled teardown leaves no
        # gateway handler on the channel.
        self.session = None
        session.release_subscriptions()

        runtime = session.runtime
        try:
            if runtime is not None:
                if runtime.state.status in (CallStatus.CONNECTING, CallStatus.ACTIVE):
                    await runtime.end_session()
                await runtime.shutdown()
        finally:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_CLOSED",
                **session.log_context(),
            })

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _publish_state(self, snapshot: SessionSnapshot) -> None:
        await self.outbound.put(self._serialize(snapshot))

    async def _on_assistant_audio(self, pcm_bytes: Any) -> None:
        if not isinstance(pcm_bytes, (bytes, bytearray)) or not pcm_bytes:
            return

        seq = next_seq(self._last_egress_seq)
        try:
            frame = encode_s2c_frame(sequence_num=seq, pcm_bytes=bytes(pcm_bytes))
        except BinaryProtocolError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUDIO_EGRESS_DROPPED",
                "session_id": self._session_id(),
                "error": str(e),
                "payload_len": len(pcm_bytes),
            })
            return

        self._last_egress_seq = seq
        await self.outbound.put(frame)

    def _serialize(self, snapshot: SessionSnapshot) -> dict[str, Any]:
        context = self._context
        return serialize_snapshot(
            snapshot,
            companion_name=context.companion_name if context else "",
            user_display_name=context.user_display_name if context else "",
        )

    def _session_id(self) -> str | None:
        return self.session.session_id if self.session else None
