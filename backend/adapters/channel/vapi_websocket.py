"""
Vapi voice channel over the websocket transport.

Core model:
- start() creates a call through the provider REST API (assistant config +
  per-call overrides, websocket transport) and returns immediately; the
  connection runs as a background task.
- The call websocket carries raw PCM16 audio both ways (binary frames) and
  provider control messages (JSON text frames).
- Provider messages are translated onto the channel event contract:
    status-update(ended)          -> call-end
    speech-update(assistant)      -> speech-start / speech-end
    everything else               -> message (session core filters)
  Opening the websocket is call-start; losing it is call-end.
- Fatal failures emit error followed by call-end, exactly once.

Design constraints:
- Adapter must not know about session status or transcripts.
- Adapter must not retry; the user restarts from the UI.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.assistant.config_builder import AssistantConfig, AssistantOverrides
from adapters.channel.base import (
    AUDIO,
    CALL_END,
    CALL_START,
    ERROR,
    MESSAGE,
    SPEECH_END,
    SPEECH_START,
    VoiceChannel,
    VoiceChannelError,
)
from audio.pcm import silence_like
from constants import AUDIO_SAMPLE_RATE_HZ, PROVIDER_HTTP_TIMEOUT_S
from observability.logger import log_event


# Provider message types this adapter needs to drive the channel events.
_TRANSPORT_CLIENT_MESSAGES: tuple[str, ...] = ("status-update", "speech-update")

_END_CALL_CONTROL = {"type": "end-call"}


# =============================================================================
# Message translation (pure)
# =============================================================================

def translate_message(data: Any) -> list[tuple[str, Any]]:
    """
    Map one provider JSON message onto (channel event, payload) pairs.

    Unknown or malformed messages are passed through as `message` events
    when they are dicts, dropped otherwise.
    """
    if not isinstance(data, dict):
        return []

    msg_type = data.get("type")

    if msg_type == "status-update":
        if data.get("status") == "ended":
            return [(CALL_END, None)]
        return [(MESSAGE, data)]

    if msg_type == "speech-update":
        if data.get("role") != "assistant":
            return [(MESSAGE, data)]
        if data.get("status") == "started":
            return [(SPEECH_START, None)]
        if data.get("status") == "stopped":
            return [(SPEECH_END, None)]
        return [(MESSAGE, data)]

    return [(MESSAGE, data)]


def merge_client_messages(requested: tuple[str, ...]) -> tuple[str, ...]:
    """Requested message types plus the ones this transport depends on."""
    merged = list(requested)
    for name in _TRANSPORT_CLIENT_MESSAGES:
        if name not in merged:
            merged.append(name)
    return tuple(merged)


def build_call_request(
    config: AssistantConfig,
    overrides: AssistantOverrides,
) -> dict[str, Any]:
    """Request body for creating a websocket-transport call."""
    overrides_payload = overrides.to_payload()
    overrides_payload["clientMessages"] = list(
        merge_client_messages(overrides.client_messages)
    )
    return {
        "assistant": config.to_payload(),
        "assistantOverrides": overrides_payload,
        "transport": {
            "provider": "vapi.websocket",
            "audioFormat": {
                "format": "pcm_s16le",
                "container": "raw",
                "sampleRate": AUDIO_SAMPLE_RATE_HZ,
            },
        },
    }


# =============================================================================
# Channel
# =============================================================================

class VapiWebSocketChannel(VoiceChannel):
    """
    Provider voice channel for one session instance.

    Not reusable: one start() per instance.
    """

    def __init__(
        self,
        *,
        api_key: str,
        session_id: str,
        base_url: str = "https://api.vapi.ai",
        http_client: httpx.AsyncClient | None = None,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._session_id = session_id
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._connect = connect

        self._ws: ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._muted = False
        self._stopping = False
        self._ended = False

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(
        self,
        config: AssistantConfig,
        overrides: AssistantOverrides,
    ) -> None:
        if self._task is not None:
            raise VoiceChannelError("channel already started")

        self._task = asyncio.create_task(self._run(config, overrides))

    async def stop(self) -> None:
        if self._stopping or self._ended:
            return
        self._stopping = True

        ws = self._ws
        if ws is not None:
            try:
                await ws.send(json.dumps(_END_CALL_CONTROL))
                await ws.close()
            except WebSocketException as exc:
                log_event({
                    "event_type": "VAPI_STOP_SEND_FAILED",
                    "session_id": self._session_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            return

        # Call not connected yet: abandon creation and report the end.
        if self._task is not None and not self._task.done():
            self._task.cancel()
        await self._emit_call_end()

    def is_muted(self) -> bool:
        return self._muted

    def set_muted(self, muted: bool) -> None:
        self._muted = muted

    async def send_audio(self, pcm_bytes: bytes) -> None:
        ws = self._ws
        if ws is None or self._ended:
            return

        payload = silence_like(pcm_bytes) if self._muted else pcm_bytes
        try:
            await ws.send(payload)
        except ConnectionClosed:
            # Receive loop reports the close.
            return

    async def wait_closed(self) -> None:
        """Wait for the background connection task to finish."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            return

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def _run(
        self,
        config: AssistantConfig,
        overrides: AssistantOverrides,
    ) -> None:
        try:
            ws_url = await self._create_call(config, overrides)
        except (httpx.HTTPError, VoiceChannelError) as exc:
            await self._fail("call_create_failed", exc)
            return

        if self._stopping:
            await self._emit_call_end()
            return

        try:
            async with self._connect(ws_url) as ws:
                self._ws = ws
                await self._emit(CALL_START)
                await self._receive_loop(ws)
        except (OSError, WebSocketException) as exc:
            if not isinstance(exc, ConnectionClosed) or not self._stopping:
                await self._fail("transport_failed", exc)
                return
        finally:
            self._ws = None

        await self._emit_call_end()

    async def _create_call(
        self,
        config: AssistantConfig,
        overrides: AssistantOverrides,
    ) -> str:
        body = build_call_request(config, overrides)
        headers = {"Authorization": f"Bearer {self._api_key}"}

        if self._http_client is not None:
            resp = await self._http_client.post(
                f"{self._base_url}/call", json=body, headers=headers
            )
        else:
            async with httpx.AsyncClient(timeout=PROVIDER_HTTP_TIMEOUT_S) as client:
                resp = await client.post(
                    f"{self._base_url}/call", json=body, headers=headers
                )

        resp.raise_for_status()
        data = resp.json()

        ws_url = (data.get("transport") or {}).get("websocketCallUrl")
        if not ws_url:
            raise VoiceChannelError("provider response missing websocketCallUrl")

        log_event({
            "event_type": "VAPI_CALL_CREATED",
            "session_id": self._session_id,
            "call_id": data.get("id"),
        })
        return ws_url

    async def _receive_loop(self, ws: ClientConnection) -> None:
        async for raw in ws:
            if isinstance(raw, bytes):
                await self._emit(AUDIO, raw)
                continue

            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                log_event({
                    "event_type": "VAPI_MESSAGE_DECODE_ERROR",
                    "session_id": self._session_id,
                    "error": str(exc),
                    "payload_preview": raw[:100],
                })
                continue

            for name, payload in translate_message(data):
                if name == CALL_END:
                    # Provider ended the call; the socket close follows.
                    await self._emit_call_end()
                    await ws.close()
                    return
                await self._emit(name, payload)

    # ------------------------------------------------------------------
    # Terminal helpers
    # ------------------------------------------------------------------

    async def _fail(self, reason: str, exc: BaseException) -> None:
        log_event({
            "event_type": "VAPI_CHANNEL_FAILED",
            "session_id": self._session_id,
            "reason": reason,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
        if not self._ended:
            await self._emit(ERROR, {
                "reason": reason,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
        await self._emit_call_end()

    async def _emit_call_end(self) -> None:
        if self._ended:
            return
        self._ended = True
        await self._emit(CALL_END)
