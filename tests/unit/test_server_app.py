# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from server.app import build_channel_factory, build_session_history, create_app
from services.session_history import LoggingSessionHistory


CONTEXT = {
    "companionId": "c1",
    "subject": "math",
    "topic": "fractions",
    "style": "casual",
    "voice": "female",
    "name": "Neura",
    "userDisplayName": "Ada",
}


def test_health(app_config):
    client = TestClient(create_app(app_config))

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_missing_provider_key_fails_fast(app_config):
    with pytest.raises(RuntimeError):
        build_channel_factory(replace(app_config, vapi_api_key=None))


def test_history_defaults_to_logging_without_credentials(app_config):
    assert isinstance(build_session_history(app_config), LoggingSessionHistory)


def test_websocket_session_round_trip(app_config, channel_factory, channels):
    app = create_app(app_config)
    app.state.channel_factory = channel_factory
    client = TestClient(app)

    with client.websocket_connect("/ws/session", headers={"x-user-id": "u1"}) as ws:
        init = ws.receive_json()
        assert init["type"] == "SESSION_INIT"

        ws.send_json({"type": "SESSION_OPEN", "context": CONTEXT})
        opened = ws.receive_json()
        assert opened["type"] == "SESSION_STATE"
        assert opened["status"] == "INACTIVE"

        ws.send_json({"type": "START_SESSION"})
        connecting = ws.receive_json()
        assert connecting["status"] == "CONNECTING"

    # Closing the socket mid-call hangs up and releases the channel.
    assert channels[0].stop_calls == 1
    assert channels[0].handler_count() == 0
