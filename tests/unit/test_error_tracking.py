# pylint: disable=missing-module-docstring,missing-function-docstring,redefined-outer-name
import json
from dataclasses import replace
from typing import Any

import pytest
import sentry_sdk

from observability.error_tracking import SentryErrorReporter
from orchestrator.runtime_context import LogErrorReporter
from server.app import build_error_reporter


@pytest.fixture
def sentry_events():
    """Initialize Sentry with a before_send hook that captures and drops events."""
    captured: list[dict[str, Any]] = []

    def before_send(event: dict[str, Any], _hint: dict[str, Any]) -> None:
        captured.append(event)

    sentry_sdk.init(
        dsn="https://public@sentry.invalid/1",
        before_send=before_send,
        default_integrations=False,
        auto_enabling_integrations=False,
    )
    yield captured
    sentry_sdk.get_client().close()
    sentry_sdk.init()


def test_channel_error_is_sent_with_session_tag(sentry_events, log_lines):
    SentryErrorReporter().report(
        session_id="sess_1",
        reason="socket reset",
        details={"exception": "ConnectionResetError"},
    )

    assert len(sentry_events) == 1
    event = sentry_events[0]
    assert event["level"] == "error"
    assert "socket reset" in event["message"]
    assert event["tags"]["session_id"] == "sess_1"
    assert event["contexts"]["channel_error"] == {
        "reason": "socket reset",
        "exception": "ConnectionResetError",
    }

    logged = json.loads(log_lines[-1])
    assert logged["event_type"] == "CHANNEL_ERROR_REPORTED"
    assert logged["session_id"] == "sess_1"


def test_session_tag_does_not_leak_between_reports(sentry_events):
    reporter = SentryErrorReporter()
    reporter.report(session_id="sess_1", reason="a", details=None)
    sentry_sdk.capture_message("unrelated")

    assert sentry_events[0]["tags"]["session_id"] == "sess_1"
    assert "session_id" not in sentry_events[1].get("tags", {})


def test_reporter_is_log_only_without_dsn(app_config):
    assert isinstance(build_error_reporter(app_config), LogErrorReporter)


def test_reporter_uses_sentry_when_dsn_set(app_config, monkeypatch):
    initialized: list[dict[str, str]] = []
    monkeypatch.setattr(
        "server.app.init_error_tracking",
        lambda **kwargs: initialized.append(kwargs),
    )

    reporter = build_error_reporter(
        replace(app_config, sentry_dsn="https://public@sentry.invalid/1")
    )

    assert isinstance(reporter, SentryErrorReporter)
    assert initialized == [{"dsn": "https://public@sentry.invalid/1", "environment": "test"}]
