"""
Runtime execution shell for a single tutor session instance.

Responsibilities:
- Own session state
- Call the pure reducer
- Execute commands with side effects (channel, transcript, history, timers)
- Translate channel events into reducer events
- Own the channel subscriptions for the lifetime of the instance

Non-responsibilities:
- Session decisions (reducer)
- Client transport (gateway)
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine

from adapters.assistant.prompts import SYSTEM_PROMPT_VERSION
from adapters.channel import base as channel_events
from adapters.channel.base import Subscription
from context.serialization import SessionSnapshot, build_snapshot
from context.transcript import TranscriptEntry, TranscriptView
from orchestrator.commands import (
    AppendTranscript,
    CancelTimer,
    Command,
    LogEvent,
    RecordSession,
    ReportError,
    StartCall,
    StartTimer,
    StopCall,
    ToggleMute,
)
from orchestrator.enums.call_status import CallStatus
from orchestrator.events import (
    CallEnd,
    CallStart,
    ChannelError,
    ChannelMessage,
    EndSession,
    ErrorWatchdogTimeout,
    Event,
    EventType,
    MuteChanged,
    SpeechEnd,
    SpeechStart,
    StartSession,
    ToggleMicrophone,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState

from observability.logger import log_event
from observability.metrics import discard_timer, start_timer, stop_timer, timed

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


SnapshotListener = Callable[[SessionSnapshot], Awaitable[None]]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _error_reason(payload: Any) -> tuple[str, dict[str, Any] | None]:
    """Normalize the channel's error payload (exception, dict, or text)."""
    if isinstance(payload, BaseException):
        return str(payload) or type(payload).__name__, {
            "exception": type(payload).__name__,
        }
    if isinstance(payload, dict):
        reason = payload.get("reason") or payload.get("message") or "channel_error"
        return str(reason), dict(payload)
    if payload is None:
        return "channel_error", None
    return str(payload), None


class Runtime:
    """
    Runtime execution boundary for a single session instance.

    Architectural role:
    Runtime is the bridge between the pure session layer
    (reducer + immutable state) and the imperative world
    (channel, transcript, history, logging, time).

    Guarantees:
    - Reducer is called exactly once per incoming event
    - Events are processed one at a time, in arrival order; events raised
      while another is being processed are queued behind it
    - State is updated before any side effects execute
    - Timers and channel events re-enter through handle_event
    - After shutdown() no event reaches the reducer
    """

    def __init__(
        self,
        *,
        initial_state: SessionState,
        context: RuntimeExecutionContext,
        on_change: SnapshotListener | None = None,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._on_change = on_change

        self._pending: deque[Event] = deque()
        self._draining = False
        self._drain_task: asyncio.Task[Any] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

        self._subscriptions: list[Subscription] = []
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._background: set[asyncio.Task[None]] = set()

        self._connect_timer: str | None = None
        self._duration_timer: str | None = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """
        Current immutable session state.

        Only Runtime replaces it (via the reducer); consumers read only.
        """
        return self._state

    @property
    def transcript(self) -> TranscriptView:
        """Finalized transcript, newest first."""
        return self._ctx.transcript.to_display_list()

    @property
    def session_id(self) -> str:
        return self._ctx.session_id

    def snapshot(self) -> SessionSnapshot:
        """Immutable view of status, flags, and transcript for the UI."""
        return build_snapshot(
            session_id=self._ctx.session_id,
            state=self._state,
            transcript=self.transcript,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Acquire the channel subscriptions for this instance.

        Must be paired with shutdown().
        """
        if self._subscriptions or self._closed:
            return

        channel = self._ctx.channel
        self._subscriptions = [
            channel.on(channel_events.CALL_START, self._on_call_start),
            channel.on(channel_events.CALL_END, self._on_call_end),
            channel.on(channel_events.SPEECH_START, self._on_speech_start),
            channel.on(channel_events.SPEECH_END, self._on_speech_end),
            channel.on(channel_events.MESSAGE, self._on_message),
            channel.on(channel_events.ERROR, self._on_error),
        ]

    async def shutdown(self) -> None:
        """
        Tear down the instance.

        Events queued behind an in-progress drain (e.g. an end_session()
        issued while the channel is still starting) are processed first.
        Then every channel subscription is released, timers are cancelled,
        and in-flight background commands are awaited. Idempotent.
        """
        while self._draining and asyncio.current_task() is not self._drain_task:
            await self._idle.wait()

        if self._closed:
            return
        self._closed = True

        for sub in self._subscriptions:
            sub.release()
        self._subscriptions.clear()

        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        try:
            await self.flush()
        finally:
            for timer_id in (self._connect_timer, self._duration_timer):
                if timer_id is not None:
                    discard_timer(timer_id)
            self._connect_timer = None
            self._duration_timer = None

            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_RUNTIME_CLOSED",
                "session_id": self._ctx.session_id,
                "status": self._state.status.value,
            })

    async def flush(self) -> None:
        """Wait until fire-and-forget commands have completed."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def __aenter__(self) -> Runtime:
        self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # UI actions
    # ------------------------------------------------------------------

    async def start_session(self) -> None:
        """Request the call. Returns before the call is ACTIVE."""
        await self.handle_event(
            StartSession(event_type=EventType.START_SESSION, ts_ms=_now_ms())
        )

    async def end_session(self) -> None:
        """Finish the session and hang up."""
        await self.handle_event(
            EndSession(event_type=EventType.END_SESSION, ts_ms=_now_ms())
        )

    async def toggle_microphone(self) -> None:
        """Invert the microphone mute state (ACTIVE only)."""
        await self.handle_event(
            ToggleMicrophone(event_type=EventType.TOGGLE_MICROPHONE, ts_ms=_now_ms())
        )

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the session pipeline.

        This method is the *only* entry point for events affecting session
        state. All event sources converge here:
        - UI actions (gateway)
        - Channel events (subscriptions)
        - Timers and command results

        Calls made while an event is already being processed enqueue the
        event and return; the active caller drains it.
        """
        if self._closed:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "EVENT_AFTER_SHUTDOWN",
                "session_id": self._ctx.session_id,
                "dropped_event": event.event_type.value,
            })
            return

        self._pending.append(event)
        if self._draining:
            return

        self._draining = True
        self._drain_task = asyncio.current_task()
        self._idle.clear()
        try:
            while self._pending and not self._closed:
                await self._process(self._pending.popleft())
        finally:
            self._draining = False
            self._drain_task = None
            self._idle.set()

    async def _process(self, event: Event) -> None:
        prev = self._state
        new_state, commands = reduce(prev, event)
        self._state = new_state

        self._record_status_metrics(prev, new_state)

        changed = new_state != prev
        for cmd in commands:
            await self._execute_command(cmd)
            if isinstance(cmd, AppendTranscript):
                changed = True

        if changed:
            await self._notify()

    async def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            await self._on_change(self.snapshot())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "STATE_LISTENER_FAILED",
                "session_id": self._ctx.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    # ------------------------------------------------------------------
    # Channel handlers (registered in open())
    # ------------------------------------------------------------------

    async def _on_call_start(self, _payload: Any) -> None:
        await self.handle_event(
            CallStart(event_type=EventType.CALL_START, ts_ms=_now_ms())
        )

    async def _on_call_end(self, _payload: Any) -> None:
        await self.handle_event(
            CallEnd(event_type=EventType.CALL_END, ts_ms=_now_ms())
        )

    async def _on_speech_start(self, _payload: Any) -> None:
        await self.handle_event(
            SpeechStart(event_type=EventType.SPEECH_START, ts_ms=_now_ms())
        )

    async def _on_speech_end(self, _payload: Any) -> None:
        await self.handle_event(
            SpeechEnd(event_type=EventType.SPEECH_END, ts_ms=_now_ms())
        )

    async def _on_message(self, payload: Any) -> None:
        await self.handle_event(
            ChannelMessage(
                event_type=EventType.CHANNEL_MESSAGE,
                ts_ms=_now_ms(),
                payload=payload if isinstance(payload, dict) else {},
            )
        )

    async def _on_error(self, payload: Any) -> None:
        reason, details = _error_reason(payload)
        await self.handle_event(
            ChannelError(
                event_type=EventType.CHANNEL_ERROR,
                ts_ms=_now_ms(),
                reason=reason,
                details=details,
            )
        )

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:  # pylint: disable=too-many-branches
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, StartCall):
            try:
                await self._ctx.channel.start(cmd.config, cmd.overrides)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_command_failure(cmd, exc)
                # Surfaces like any transport error; the watchdog bounds it.
                await self.handle_event(
                    ChannelError(
                        event_type=EventType.CHANNEL_ERROR,
                        ts_ms=_now_ms(),
                        reason=f"start_failed: {exc}",
                        details={"exception": type(exc).__name__},
                    )
                )
                return

            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CALL_START_EXECUTED",
                "session_id": self._ctx.session_id,
                "voice_id": cmd.config.voice.voice_id,
                "prompt_version": SYSTEM_PROMPT_VERSION,
            })

        elif isinstance(cmd, StopCall):
            self._spawn(self._stop_channel(cmd))

        elif isinstance(cmd, ToggleMute):
            channel = self._ctx.channel
            try:
                muted = not channel.is_muted()
                channel.set_muted(muted)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_command_failure(cmd, exc)
                return

            await self.handle_event(
                MuteChanged(
                    event_type=EventType.MUTE_CHANGED,
                    ts_ms=_now_ms(),
                    muted=muted,
                )
            )

        elif isinstance(cmd, AppendTranscript):
            self._ctx.transcript.append(
                TranscriptEntry(role=cmd.role, content=cmd.content)
            )

        elif isinstance(cmd, RecordSession):
            self._spawn(self._record_session(cmd))

        elif isinstance(cmd, ReportError):
            try:
                self._ctx.error_reporter.report(
                    session_id=self._ctx.session_id,
                    reason=cmd.reason,
                    details=cmd.details,
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_command_failure(cmd, exc)

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_HANDLED",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            })

    async def _stop_channel(self, cmd: StopCall) -> None:
        try:
            await self._ctx.channel.stop()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_command_failure(cmd, exc)

    async def _record_session(self, cmd: RecordSession) -> None:
        try:
            with timed(
                "session_record_latency",
                session_id=self._ctx.session_id,
                status=self._state.status.value,
            ):
                await self._ctx.history.record_session(
                    companion_id=cmd.companion_id,
                    user_id=self._ctx.user_id,
                )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_RECORD_FAILED",
                "session_id": self._ctx.session_id,
                "companion_id": cmd.companion_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a fire-and-forget command; flush()/shutdown() await it."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _log_command_failure(self, cmd: Command, exc: BaseException) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CHANNEL_COMMAND_FAILED",
            "session_id": self._ctx.session_id,
            "command_type": cmd.command_type.value,
            "exception": type(exc).__name__,
            "message": str(exc),
        })

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _record_status_metrics(self, prev: SessionState, new: SessionState) -> None:
        if prev.status is new.status:
            return

        if new.status is CallStatus.CONNECTING:
            self._connect_timer = start_timer("session_connect_latency")

        elif new.status is CallStatus.ACTIVE:
            if self._connect_timer is not None:
                stop_timer(
                    self._connect_timer,
                    session_id=self._ctx.session_id,
                    status=new.status.value,
                )
                self._connect_timer = None
            self._duration_timer = start_timer("session_duration")

        elif new.status is CallStatus.FINISHED:
            if self._connect_timer is not None:
                discard_timer(self._connect_timer)
                self._connect_timer = None
            if self._duration_timer is not None:
                stop_timer(
                    self._duration_timer,
                    session_id=self._ctx.session_id,
                    status=new.status.value,
                    details={"finish_reason": new.finish_reason},
                )
                self._duration_timer = None

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                return

            # Expired timers are no longer cancellable
            self._timers.pop(timer_id, None)
            await self.handle_event(self._construct_timeout_event(timeout_event_type))

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _construct_timeout_event(self, timeout_event_type: EventType) -> Event:
        if timeout_event_type is EventType.ERROR_WATCHDOG_TIMEOUT:
            return ErrorWatchdogTimeout(
                event_type=EventType.ERROR_WATCHDOG_TIMEOUT,
                ts_ms=_now_ms(),
            )

        raise ValueError(f"Unknown timeout event type: {timeout_event_type}")
