"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (session history, channel factory,
  error reporting)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.channel.base import VoiceChannel
from adapters.channel.vapi_websocket import VapiWebSocketChannel
from config import AppConfig
from observability import logger
from observability.error_tracking import SentryErrorReporter, init_error_tracking
from orchestrator.runtime_context import (
    ErrorReporterProtocol,
    LogErrorReporter,
    SessionHistoryProtocol,
)
from services.session_history import LoggingSessionHistory, SupabaseSessionHistory
from session.gateway import ChannelFactory

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(enable_json_logs=config.enable_json_logs)

    app = FastAPI(title="Companion Voice Session API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared collaborators, created ONCE per process
    app.state.session_history = build_session_history(config)
    app.state.channel_factory = build_channel_factory(config)
    app.state.error_reporter = build_error_reporter(config)

    # Routes
    register_routes(app)

    return app


def build_session_history(config: AppConfig) -> SessionHistoryProtocol:
    """Supabase-backed history when credentials are set, log-only otherwise."""
    if config.supabase_url and config.supabase_service_role_key:
        return SupabaseSessionHistory.from_credentials(
            url=config.supabase_url,
            service_role_key=config.supabase_service_role_key,
            table=config.session_history_table,
        )
    return LoggingSessionHistory()


def build_channel_factory(config: AppConfig) -> ChannelFactory:
    """Build the per-session voice channel factory."""
    api_key = config.vapi_api_key
    if not api_key:
        raise RuntimeError("VAPI_API_KEY environment variable not set")

    def factory(session_id: str) -> VoiceChannel:
        return VapiWebSocketChannel(
            api_key=api_key,
            session_id=session_id,
            base_url=config.vapi_base_url,
        )

    return factory


def build_error_reporter(config: AppConfig) -> ErrorReporterProtocol:
    """Sentry-backed reporting when SENTRY_DSN is set, log-only otherwise."""
    if config.sentry_dsn:
        init_error_tracking(dsn=config.sentry_dsn, environment=config.env)
        return SentryErrorReporter()
    return LogErrorReporter()
