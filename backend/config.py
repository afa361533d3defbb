"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import CHANNEL_ERROR_WATCHDOG_MS, SESSION_HISTORY_TABLE


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory and the session gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str

    # ------------------------------------------------------------------
    # Voice provider
    # ------------------------------------------------------------------

    vapi_api_key: str | None
    vapi_base_url: str

    # ------------------------------------------------------------------
    # Session history datastore
    # ------------------------------------------------------------------

    supabase_url: str | None
    supabase_service_role_key: str | None
    session_history_table: str

    # ------------------------------------------------------------------
    # Session behavior
    # ------------------------------------------------------------------

    channel_error_watchdog_ms: int

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool
    sentry_dsn: str | None = None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if CHANNEL_ERROR_WATCHDOG_MS is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),

            vapi_api_key=os.environ.get("VAPI_API_KEY"),
            vapi_base_url=os.environ.get("VAPI_BASE_URL", "https://api.vapi.ai"),

            supabase_url=os.environ.get("SUPABASE_URL"),
            supabase_service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY"),
            session_history_table=os.environ.get(
                "SESSION_HISTORY_TABLE", SESSION_HISTORY_TABLE
            ),

            channel_error_watchdog_ms=int(
                os.environ.get(
                    "CHANNEL_ERROR_WATCHDOG_MS", str(CHANNEL_ERROR_WATCHDOG_MS)
                )
            ),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
            sentry_dsn=os.environ.get("SENTRY_DSN") or None,
        )
