"""
Voice channel contract.

This module defines the *interface only* for the bidirectional voice
connection to the provider, plus the small event-registration machinery
every implementation shares.

Key invariants:
- The channel emits named events; it never calls the reducer or decides
  session state.
- Handlers are awaited one at a time, in the order events are received.
- Registration returns a Subscription that must be released by its owner;
  a released handler never sees another event.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from adapters.assistant.config_builder import AssistantConfig, AssistantOverrides
from observability.logger import log_event


# =============================================================================
# Event names (provider SDK vocabulary)
# =============================================================================

CALL_START = "call-start"
CALL_END = "call-end"
SPEECH_START = "speech-start"
SPEECH_END = "speech-end"
MESSAGE = "message"
ERROR = "error"

# Transport-level: assistant PCM16 audio for the client, not session state.
AUDIO = "audio"

CHANNEL_EVENTS: frozenset[str] = frozenset({
    CALL_START,
    CALL_END,
    SPEECH_START,
    SPEECH_END,
    MESSAGE,
    ERROR,
    AUDIO,
})


ChannelHandler = Callable[[Any], Awaitable[None]]


class VoiceChannelError(Exception):
    """Raised when a channel command cannot be carried out."""


# =============================================================================
# Subscription
# =============================================================================

class Subscription:
    """
    Handle for one (event name, handler) registration.

    release() is idempotent.
    """

    def __init__(self, channel: VoiceChannel, name: str, handler: ChannelHandler) -> None:
        self._channel = channel
        self.name = name
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        self._channel.off(self.name, self._handler)


# =============================================================================
# Channel
# =============================================================================

class VoiceChannel(ABC):
    """
    Abstract bidirectional voice connection.

    Implementations are responsible for:
    - Opening the provider call on start() without waiting for it to connect
    - Emitting call-start / call-end / speech-start / speech-end /
      message / error events via _emit()
    - Applying mute to outgoing microphone audio

    Non-responsibilities:
    - No session status logic
    - No transcript filtering
    - No history bookkeeping
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[ChannelHandler]] = {}

    # ------------------------------------------------------------------
    # Event registration
    # ------------------------------------------------------------------

    def on(self, name: str, handler: ChannelHandler) -> Subscription:
        """Register a handler and return the subscription that owns it."""
        if name not in CHANNEL_EVENTS:
            raise ValueError(f"Unknown channel event: {name}")
        self._handlers.setdefault(name, []).append(handler)
        return Subscription(self, name, handler)

    def off(self, name: str, handler: ChannelHandler) -> None:
        """Deregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return

    def handler_count(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._handlers.get(name, ()))
        return sum(len(h) for h in self._handlers.values())

    async def _emit(self, name: str, payload: Any = None) -> None:
        """
        Deliver one event to every registered handler, in order.

        A failing handler is logged and does not stop delivery to the rest.
        """
        for handler in tuple(self._handlers.get(name, ())):
            # Released between snapshot and call
            if handler not in self._handlers.get(name, ()):
                continue
            try:
                await handler(payload)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "CHANNEL_HANDLER_FAILED",
                    "channel_event": name,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @abstractmethod
    async def start(
        self,
        config: AssistantConfig,
        overrides: AssistantOverrides,
    ) -> None:
        """
        Begin opening a call.

        Must return without waiting for the call to connect; connection is
        reported later through call-start.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Hang up. Idempotent.

        The provider reports the end through call-end.
        """
        raise NotImplementedError

    @abstractmethod
    def is_muted(self) -> bool:
        """Current microphone mute state."""
        raise NotImplementedError

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        """Suppress (True) or restore (False) the user's microphone."""
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, pcm_bytes: bytes) -> None:
        """
        Forward one chunk of user microphone PCM16 audio.

        While muted, implementations send silence of the same length.
        """
        raise NotImplementedError
