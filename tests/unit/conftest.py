# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any, Awaitable, Callable

import pytest

from adapters.assistant.config_builder import AssistantConfig, AssistantOverrides
from adapters.channel.base import VoiceChannel
from config import AppConfig
from context.transcript import TranscriptAccumulator
from observability import logger
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import SessionState
from session.gateway import SessionGateway
from session.session_context import SessionContext


# ---------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------

class FakeChannel(VoiceChannel):
    """
    In-memory channel. Tests drive provider events with emit().

    stop() does not emit call-end on its own; tests decide whether the
    provider confirms the hang-up.
    """

    def __init__(self) -> None:
        super().__init__()
        self.started: list[tuple[AssistantConfig, AssistantOverrides]] = []
        self.stop_calls = 0
        self.sent_audio: list[bytes] = []
        self.muted = False
        self.fail_start = False
        self.start_hook: Callable[[], Awaitable[None]] | None = None

    async def start(self, config: AssistantConfig, overrides: AssistantOverrides) -> None:
        if self.fail_start:
            raise RuntimeError("provider unavailable")
        self.started.append((config, overrides))
        if self.start_hook is not None:
            await self.start_hook()

    async def stop(self) -> None:
        self.stop_calls += 1

    def is_muted(self) -> bool:
        return self.muted

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    async def send_audio(self, pcm_bytes: bytes) -> None:
        self.sent_audio.append(pcm_bytes)

    async def emit(self, name: str, payload: Any = None) -> None:
        await self._emit(name, payload)


class FakeHistory:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail = fail
        self.gate: asyncio.Event | None = None

    async def record_session(self, *, companion_id: str, user_id: str | None) -> None:
        self.calls.append({"companion_id": companion_id, "user_id": user_id})
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("datastore down")


class FakeErrorReporter:
    def __init__(self) -> None:
        self.reports: list[dict[str, Any]] = []

    def report(self, *, session_id: str, reason: str, details: dict[str, Any] | None) -> None:
        self.reports.append({"session_id": session_id, "reason": reason, "details": details})


def make_context(**overrides: Any) -> SessionContext:
    values: dict[str, Any] = {
        "companion_id": "c1",
        "subject": "math",
        "topic": "fractions",
        "style": "casual",
        "voice_id": "female",
        "user_display_name": "Ada",
        "companion_name": "Neura the Brainy Explorer",
        "user_id": "u1",
    }
    values.update(overrides)
    return SessionContext(**values)


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "env": "test",
        "vapi_api_key": "test-key",
        "vapi_base_url": "https://api.vapi.test",
        "supabase_url": None,
        "supabase_service_role_key": None,
        "session_history_table": "session_history",
        "channel_error_watchdog_ms": 15_000,
        "enable_json_logs": True,
    }
    values.update(overrides)
    return AppConfig(**values)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def log_lines(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    monkeypatch.setattr(logger, "_enabled", True)
    return captured


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def reporter() -> FakeErrorReporter:
    return FakeErrorReporter()


@pytest.fixture
def snapshots() -> list[Any]:
    return []


@pytest.fixture
def make_runtime(channel, history, reporter, snapshots):
    def _make(*, watchdog_ms: int = 15_000) -> Runtime:
        async def on_change(snapshot: Any) -> None:
            snapshots.append(snapshot)

        runtime = Runtime(
            initial_state=SessionState(context=make_context(), error_watchdog_ms=watchdog_ms),
            context=RuntimeExecutionContext(
                session_id="sess_test",
                channel=channel,
                transcript=TranscriptAccumulator(),
                history=history,
                error_reporter=reporter,
                user_id="u1",
            ),
            on_change=on_change,
        )
        runtime.open()
        return runtime

    return _make


@pytest.fixture
def app_config() -> AppConfig:
    return make_config()


@pytest.fixture
def channels() -> list[FakeChannel]:
    """Every channel handed out by the gateway's factory, in order."""
    return []


@pytest.fixture
def channel_factory(channels):
    def factory(_session_id: str) -> FakeChannel:
        ch = FakeChannel()
        channels.append(ch)
        return ch

    return factory


@pytest.fixture
def make_gateway(history, reporter, channel_factory):
    def _make(**config_overrides: Any) -> SessionGateway:
        return SessionGateway(
            config=make_config(**config_overrides),
            channel_factory=channel_factory,
            history=history,
            error_reporter=reporter,
            user_id="u1",
        )

    return _make
