"""
Sentry error tracking for channel errors.

The reporter keeps the structured CHANNEL_ERROR_REPORTED log line and
additionally sends one Sentry event per error, tagged with the session id.
"""

from __future__ import annotations

from typing import Any

import sentry_sdk

from orchestrator.runtime_context import ErrorReporterProtocol, LogErrorReporter


def init_error_tracking(*, dsn: str, environment: str) -> None:
    """Initialize the Sentry client for this process."""
    sentry_sdk.init(dsn=dsn, environment=environment)


class SentryErrorReporter:
    """Sends channel errors to Sentry in a scope isolated per report."""

    def __init__(self, log_reporter: ErrorReporterProtocol | None = None) -> None:
        self._log_reporter = log_reporter or LogErrorReporter()

    def report(
        self,
        *,
        session_id: str,
        reason: str,
        details: dict[str, Any] | None,
    ) -> None:
        self._log_reporter.report(
            session_id=session_id, reason=reason, details=details
        )

        with sentry_sdk.new_scope() as scope:
            scope.set_tag("session_id", session_id)
            scope.set_context("channel_error", {"reason": reason, **(details or {})})
            sentry_sdk.capture_message(f"Voice channel error: {reason}", level="error")
