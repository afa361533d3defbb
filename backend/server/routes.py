"""
Route registration for the voice session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import GatewayResult, SessionGateway

# Identity header set by the authenticating proxy in front of this service
USER_ID_HEADER = "x-user-id"


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws/session")
    async def session_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = SessionGateway(
            config=app.state.config,
            channel_factory=app.state.channel_factory,
            history=app.state.session_history,
            error_reporter=app.state.error_reporter,
            user_id=ws.headers.get(USER_ID_HEADER),
        )

        sender = asyncio.create_task(_pump_outbound(ws, gateway))

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result)

            while True:
                msg = await ws.receive()

                if msg.get("type") == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result)

                elif msg.get("bytes") is not None:
                    result = await gateway.on_binary_message(msg["bytes"])
                    await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await _teardown(gateway, reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await _teardown(gateway, reason="server_error")

        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass


async def _teardown(gateway: SessionGateway, *, reason: str) -> None:
    """End and release the session even if the endpoint is being cancelled."""
    await asyncio.shield(gateway.on_ws_disconnect(reason=reason))


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))


async def _pump_outbound(ws: WebSocket, gateway: SessionGateway) -> None:
    """Forward state snapshots and assistant audio pushed by the gateway."""
    while True:
        item = await gateway.outbound.get()
        try:
            if isinstance(item, bytes):
                await ws.send_bytes(item)
            else:
                await ws.send_text(json.dumps(item))
        except (WebSocketDisconnect, RuntimeError) as exc:
            # Socket already closed; the receive loop handles teardown.
            log_event({
                "event_type": "WS_SEND_FAILED",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
            })
            return
